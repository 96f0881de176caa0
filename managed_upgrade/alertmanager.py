"""Client for managing silences in Alertmanager through its v2 HTTP API."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

import requests

_API_PREFIX = "/api/v2"
_ACTIVE = "active"
_TIME_RE = re.compile(r"^(.*T\d\d:\d\d:\d\d)(\.\d+)?(.*)$")


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    match = _TIME_RE.match(text)
    if match is None:
        return datetime.fromisoformat(text)
    base, fraction, tz = match.groups()
    if fraction:
        fraction = "." + fraction[1:7].ljust(6, "0")
    return datetime.fromisoformat(base + (fraction or "") + tz)


@dataclass
class Matcher:
    """Label matcher of a silence."""

    name: str
    value: str
    is_regex: bool = False
    is_equal: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "isRegex": self.is_regex,
            "isEqual": self.is_equal,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Matcher":
        return cls(
            name=data.get("name", ""),
            value=data.get("value", ""),
            is_regex=bool(data.get("isRegex", False)),
            is_equal=bool(data.get("isEqual", True)),
        )


@dataclass
class Silence:
    """A silence as returned by Alertmanager."""

    matchers: list[Matcher] = field(default_factory=list)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_by: str = ""
    comment: str = ""
    id: str = ""
    state: str = ""

    @property
    def is_active(self) -> bool:
        return self.state == _ACTIVE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Silence":
        return cls(
            matchers=[Matcher.from_dict(m) for m in data.get("matchers") or []],
            starts_at=_parse_time(data.get("startsAt")),
            ends_at=_parse_time(data.get("endsAt")),
            created_by=data.get("createdBy", ""),
            comment=data.get("comment", ""),
            id=data.get("id", ""),
            state=(data.get("status") or {}).get("state", ""),
        )


SilencePredicate = Callable[[Silence], bool]


class AlertManagerSilenceClient:
    """Creates, lists, updates and deletes silences on one Alertmanager."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        resp = self.session.request(
            method, f"{self.base_url}{_API_PREFIX}{path}", timeout=self.timeout, **kwargs
        )
        resp.raise_for_status()
        return resp

    def create(
        self,
        matchers: Iterable[Matcher],
        starts_at: datetime,
        ends_at: datetime,
        creator: str,
        comment: str,
    ) -> str:
        """Create a silence and return its id."""
        body = {
            "matchers": [m.to_dict() for m in matchers],
            "startsAt": _format_time(starts_at),
            "endsAt": _format_time(ends_at),
            "createdBy": creator,
            "comment": comment,
        }
        resp = self._request("POST", "/silences", json=body)
        if not resp.content:
            return ""
        return resp.json().get("silenceID", "")

    def list(self, filters: Iterable[str]) -> list[Silence]:
        """List silences, optionally narrowed by Alertmanager filter expressions."""
        params = {"filter": [*filters]}
        resp = self._request("GET", "/silences", params=params)
        return [Silence.from_dict(item) for item in resp.json() or []]

    def delete(self, silence_id: str) -> None:
        """Expire the silence with the given id."""
        self._request("DELETE", f"/silence/{silence_id}")

    def _get(self, silence_id: str) -> Silence:
        return Silence.from_dict(self._request("GET", f"/silence/{silence_id}").json())

    def update(self, silence_id: str, ends_at: datetime) -> None:
        """Replace a silence with one that ends at the given time."""
        existing = self._get(silence_id)
        try:
            self.create(
                existing.matchers,
                existing.starts_at,
                ends_at,
                existing.created_by,
                existing.comment,
            )
        except requests.RequestException as err:
            raise RuntimeError(f"unable to create replacement silence: {err}") from err
        if existing.is_active:
            try:
                self.delete(existing.id)
            except requests.RequestException as err:
                raise RuntimeError(f"unable to remove replaced silence: {err}") from err

    def filter(self, *args: SilencePredicate) -> list[Silence]:
        """Return the silences for which every predicate holds."""
        return [s for s in self.list([]) if all(p(s) for p in args)]