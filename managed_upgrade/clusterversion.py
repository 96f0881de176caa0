"""Reading and steering the cluster's ClusterVersion resource."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from managed_upgrade.api import ConditionStatus, UpgradeConfig

logger = logging.getLogger(__name__)

OSD_CV_NAME = "version"

OPERATOR_DEGRADED = "Degraded"
OPERATOR_AVAILABLE = "Available"


class UpgradeSource(str, Enum):
    """Which part of the desired update drives the upgrade."""

    IMAGE = "UpgradeWithImage"
    CHANNEL_VERSION = "UpgradeWithChannelVersion"


class UpdateState(str, Enum):
    """State of an entry in the cluster's update history."""

    COMPLETED = "Completed"
    PARTIAL = "Partial"


@dataclass
class Release:
    """A release the cluster can update to."""

    version: str = ""
    image: str = ""


@dataclass
class ConditionalUpdate:
    """A release that is available subject to known risks."""

    release: Release = field(default_factory=Release)


@dataclass
class DesiredUpdate:
    """The update the cluster version operator is asked to apply."""

    version: str = ""
    image: str = ""


@dataclass
class UpdateHistory:
    """One entry of the cluster's update history."""

    state: UpdateState | str = UpdateState.PARTIAL
    version: str = ""
    image: str = ""
    completion_time: Optional[datetime] = None


@dataclass
class ClusterVersion:
    """The cluster-wide ClusterVersion resource."""

    name: str = ""
    channel: str = ""
    desired_update: Optional[DesiredUpdate] = None
    overrides: list[Any] = field(default_factory=list)
    history: list[UpdateHistory] = field(default_factory=list)
    available_updates: list[Release] = field(default_factory=list)
    conditional_updates: list[ConditionalUpdate] = field(default_factory=list)


@dataclass
class OperatorCondition:
    """A status condition of a cluster operator."""

    type: str
    status: ConditionStatus | str


@dataclass
class ClusterOperator:
    """A cluster operator and its status conditions."""

    name: str
    conditions: list[OperatorCondition] = field(default_factory=list)


@dataclass
class DegradedOperatorsResult:
    """Names of the cluster operators that are degraded or unavailable."""

    degraded: list[str] = field(default_factory=list)


class KubeClient(Protocol):
    """The cluster API operations this module needs."""

    def get(self, kind: type, name: str, namespace: str = "") -> Any: ...

    def list(self, kind: type) -> list[Any]: ...

    def patch(self, obj: Any, patch: str) -> None: ...


def _merge_patch(document: dict[str, Any]) -> str:
    return json.dumps(document, separators=(",", ":"))


def check_upgrade_source(uc: UpgradeConfig) -> UpgradeSource:
    """Decide whether the upgrade is driven by an image or by channel and version."""
    desired = uc.spec.desired
    if desired.image:
        return UpgradeSource.IMAGE
    if desired.channel and desired.version:
        return UpgradeSource.CHANNEL_VERSION
    raise ValueError("cannot find the correct upgrade spec source")


def _is_equal_version(cv: ClusterVersion, uc: UpgradeConfig) -> bool:
    return cv.desired_update is not None and cv.desired_update.version == uc.spec.desired.version


def _is_equal_image(cv: ClusterVersion, uc: UpgradeConfig) -> bool:
    return cv.desired_update is not None and cv.desired_update.image == uc.spec.desired.image


def get_history(cluster_version: ClusterVersion, version: str) -> Optional[UpdateHistory]:
    """Return a copy of the history entry for the version, or None."""
    found = next((h for h in cluster_version.history if h.version == version), None)
    return copy.copy(found) if found is not None else None


def get_current_version(cluster_version: ClusterVersion) -> str:
    """Return the most recently completed version."""
    current = ""
    latest: Optional[datetime] = None
    for entry in cluster_version.history:
        if entry.state != UpdateState.COMPLETED:
            continue
        if latest is None or (
            entry.completion_time is not None and entry.completion_time > latest
        ):
            current = entry.version
            latest = entry.completion_time
    if not current:
        raise LookupError("failed to get current version")
    return current


def get_current_version_minus_one(cluster_version: ClusterVersion) -> str:
    """Return the version completed just before the current one."""
    completed = [h for h in cluster_version.history if h.state == UpdateState.COMPLETED]
    if len(completed) <= 1:
        raise LookupError("cluster has only one version available")
    completed.sort(key=lambda h: h.completion_time or datetime.min, reverse=True)
    previous = completed[1].version
    if not previous:
        raise LookupError("failed to get current version - 1")
    return previous


class ClusterVersionClient:
    """Operations on the ClusterVersion resource through a cluster client."""

    def __init__(self, client: KubeClient):
        self.client = client

    def get_cluster_version(self) -> ClusterVersion:
        """Fetch the ClusterVersion resource."""
        return self.client.get(ClusterVersion, OSD_CV_NAME)

    def ensure_desired_config(self, uc: UpgradeConfig) -> bool:
        """Point the cluster at the upgrade config's target; return whether it was set."""
        cluster_version = self.get_cluster_version()
        source = check_upgrade_source(uc)
        if source is UpgradeSource.IMAGE:
            return self._run_upgrade_with_image(cluster_version, uc)
        return self._run_upgrade_with_channel_version(cluster_version, uc)

    def has_degraded_operators(self) -> DegradedOperatorsResult:
        """List the operators that are degraded or not available."""
        degraded = [
            operator.name
            for operator in self.client.list(ClusterOperator)
            if any(
                (c.type == OPERATOR_DEGRADED and c.status == ConditionStatus.TRUE)
                or (c.type == OPERATOR_AVAILABLE and c.status == ConditionStatus.FALSE)
                for c in operator.conditions
            )
        ]
        return DegradedOperatorsResult(degraded=degraded)

    def has_upgrade_completed(self, cv: ClusterVersion, uc: UpgradeConfig) -> bool:
        """Whether the desired version appears as completed in the cluster history."""
        return any(
            h.version == uc.spec.desired.version and h.state == UpdateState.COMPLETED
            for h in cv.history
        )

    def has_upgrade_commenced(self, uc: UpgradeConfig) -> bool:
        """Whether the cluster is already set to the upgrade config's target."""
        cluster_version = self.get_cluster_version()
        source = check_upgrade_source(uc)
        desired = uc.spec.desired
        if source is UpgradeSource.IMAGE:
            if not _is_equal_image(cluster_version, uc):
                logger.info("ClusterVersion is not yet set to Image %s", desired.image)
                return False
            logger.info("ClusterVersion is already set to Image %s", desired.image)
            return True
        if not _is_equal_version(cluster_version, uc):
            return False
        logger.info(
            "ClusterVersion is already set to Channel %s Version %s",
            desired.channel,
            desired.version,
        )
        return True

    def _run_upgrade_with_image(self, cv: ClusterVersion, uc: UpgradeConfig) -> bool:
        desired = uc.spec.desired
        if cv.desired_update is None or cv.desired_update.image != desired.image:
            logger.info("Setting ClusterVersion to Image %s", desired.image)
            patch = _merge_patch(
                {"spec": {"desiredUpdate": {"image": desired.image, "version": None}}}
            )
            self.client.patch(cv, patch)
        return True

    def _run_upgrade_with_channel_version(self, cv: ClusterVersion, uc: UpgradeConfig) -> bool:
        desired = uc.spec.desired
        if cv.channel != desired.channel:
            logger.info(
                "Setting ClusterVersion to Channel %s Version %s",
                desired.channel,
                desired.version,
            )
            self.client.patch(cv, _merge_patch({"spec": {"channel": desired.channel}}))
            cv = self.get_cluster_version()

        update_available = any(
            u.version == desired.version and u.image for u in cv.available_updates
        )
        image = ""
        for update in cv.conditional_updates:
            if update.release.version == desired.version and update.release.image:
                update_available = True
                image = update.release.image
        if not update_available:
            logger.info(
                "clusterversion does not have desired version %s in its AvailableUpdates, "
                "will not continue",
                desired.version,
            )
            return False

        cv.overrides = []
        patch = _merge_patch(
            {"spec": {"desiredUpdate": {"version": desired.version, "image": image or None}}}
        )
        self.client.patch(cv, patch)
        return True


class ClusterVersionBuilder:
    """Creates ClusterVersionClient instances."""

    def new(self, client: KubeClient) -> ClusterVersionClient:
        return ClusterVersionClient(client)