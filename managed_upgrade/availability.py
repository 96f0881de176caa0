"""Checks that external dependencies of an upgrade are reachable."""

from __future__ import annotations

import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, TypeVar

import requests

T = TypeVar("T")


class AvailabilityError(Exception):
    """An external dependency is not available."""


class StopRetry(Exception):
    """Raised inside a retried function to give up at once with the wrapped error."""

    def __init__(self, error: BaseException | str):
        if not isinstance(error, BaseException):
            error = AvailabilityError(str(error))
        super().__init__(str(error))
        self.error = error


def retry(attempts: int, sleep: float, func: Callable[[], T]) -> T:
    """Call func until it succeeds, at most `attempts` times.

    Between attempts the wait (in seconds) grows with random jitter and then
    doubles. A StopRetry ends the retries and raises the error it wraps.
    """
    while True:
        try:
            return func()
        except StopRetry as stop:
            raise stop.error from None
        except Exception:
            attempts -= 1
            if attempts <= 0:
                raise
            jitter = random.random() * sleep
            sleep = sleep + jitter / 2
            time.sleep(sleep)
            sleep *= 2


@dataclass
class HTTPTargets:
    """HTTP endpoints to check; timeout in seconds."""

    timeout: int = 15
    urls: list[str] = field(default_factory=list)


@dataclass
class ExtDependencyAvailabilityCheck:
    """External dependency check configuration."""

    http: HTTPTargets = field(default_factory=HTTPTargets)

    def timeout(self) -> timedelta:
        return timedelta(seconds=self.http.timeout)


@dataclass
class HTTPConfig:
    """Targets and per-request timeout for HTTP checks."""

    targets: list[str] = field(default_factory=list)
    timeout: timedelta = timedelta(0)


@dataclass
class HTTPAvailabilityChecker:
    """Checks that every target URL answers without an HTTP error."""

    targets: list[str] = field(default_factory=list)
    timeout: timedelta = timedelta(0)

    def _check(self, url: str) -> None:
        request_timeout = self.timeout.total_seconds() or None

        def attempt() -> None:
            try:
                resp = requests.get(url, timeout=request_timeout)
            except requests.RequestException as err:
                raise AvailabilityError(f"client request error for {url}: {err}") from err
            status = resp.status_code
            resp.close()
            if status >= 500:
                raise AvailabilityError(f"server error for {url}: {status}")
            if status >= 400:
                raise StopRetry(AvailabilityError(f"client error for {url}: {status}"))

        retry(3, 1.0, attempt)

    def availability_check(self) -> None:
        """Check all targets concurrently; raise AvailabilityError if any is unavailable."""
        if not self.targets:
            return
        with ThreadPoolExecutor(max_workers=len(self.targets)) as pool:
            futures = [pool.submit(self._check, url) for url in self.targets]
        failures = [f.exception() for f in futures if f.exception() is not None]
        if failures:
            raise failures[-1]


def get_http_availability_checker(config: Any) -> HTTPAvailabilityChecker:
    """Build an HTTP checker from an HTTPConfig."""
    if isinstance(config, HTTPConfig):
        return HTTPAvailabilityChecker(targets=list(config.targets), timeout=config.timeout)
    raise TypeError("Attempt to get HTTP implementation failed ascertation as HTTPConfig")


def get_availability_checkers(
    avail_cfg: ExtDependencyAvailabilityCheck,
) -> list[HTTPAvailabilityChecker]:
    """Return the checkers that the configuration asks for."""
    checkers: list[HTTPAvailabilityChecker] = []
    if avail_cfg.http.urls:
        http_config = HTTPConfig(targets=avail_cfg.http.urls, timeout=avail_cfg.timeout())
        checkers.append(get_http_availability_checker(http_config))
    return checkers