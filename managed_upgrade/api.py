"""Resource model for the UpgradeConfig API and the small types shared by controllers."""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional


class UpgradeType(str, Enum):
    """Which cluster upgrader implementation performs the upgrade."""

    OSD = "OSD"
    ARO = "ARO"


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class UpgradeConditionType(str, Enum):
    """Stages an upgrade passes through."""

    SEND_STARTED_NOTIFICATION = "StartedNotificationSent"
    UPGRADE_PRE_HEALTH_CHECK = "ClusterHealthyBeforeUpgrade"
    EXT_DEP_AVAILABILITY_CHECK = "ExternalDependenciesAvailable"
    UPGRADE_SCALE_UP_EXTRA_NODES = "ComputeCapacityReserved"
    CONTROL_PLANE_MAINT_WINDOW = "ControlPlaneMaintenanceWindowCreated"
    COMMENCE_UPGRADE = "UpgradeCommenced"
    CONTROL_PLANE_UPGRADED = "ControlPlaneUpgraded"
    REMOVE_CONTROL_PLANE_MAINT_WINDOW = "ControlPlaneMaintenanceWindowRemoved"
    WORKERS_MAINT_WINDOW = "WorkersMaintenanceWindowCreated"
    ALL_WORKER_NODES_UPGRADED = "WorkerNodesUpgraded"
    REMOVE_EXTRA_SCALED_NODES = "ComputeCapacityRemoved"
    REMOVE_MAINT_WINDOW = "WorkersMaintenanceWindowRemoved"
    POST_CLUSTER_HEALTH_CHECK = "ClusterHealthyAfterUpgrade"
    POST_UPGRADE_PROCEDURES = "PostUpgradeTasksCompleted"
    SEND_COMPLETED_NOTIFICATION = "CompletedNotificationSent"
    IS_CLUSTER_UPGRADABLE = "IsClusterUpgradable"


class UpgradePhase(str, Enum):
    """Phase of an upgrade as recorded in its history."""

    NEW = "New"
    PENDING = "Pending"
    UPGRADING = "Upgrading"
    UPGRADED = "Upgraded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class NotFoundError(LookupError):
    """A requested cluster resource does not exist."""

    def __init__(self, resource: str, name: str):
        self.resource = resource
        self.name = name
        super().__init__(f'{resource} "{name}" not found')


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UpgradeCondition:
    """State of one upgrade stage, with its timing metadata."""

    type: UpgradeConditionType | str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    last_probe_time: Optional[datetime] = None
    last_transition_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None
    reason: str = ""
    message: str = ""

    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE

    def is_false(self) -> bool:
        return self.status == ConditionStatus.FALSE

    def is_unknown(self) -> bool:
        return self.status == ConditionStatus.UNKNOWN


class Conditions(list):
    """An ordered set of conditions keyed by condition type; newest first."""

    def _find(self, condition_type) -> Optional[UpgradeCondition]:
        return next((c for c in self if c.type == condition_type), None)

    def is_true_for(self, condition_type) -> bool:
        """True if the condition exists and is true."""
        cond = self._find(condition_type)
        return cond is not None and cond.is_true()

    def is_false_for(self, condition_type) -> bool:
        """True if the condition exists and is false."""
        cond = self._find(condition_type)
        return cond is not None and cond.is_false()

    def is_unknown_for(self, condition_type) -> bool:
        """True if the condition is missing or its status is unknown."""
        cond = self._find(condition_type)
        return cond is None or cond.is_unknown()

    def set_condition(self, new_cond: UpgradeCondition) -> bool:
        """Add or replace the condition of the same type.

        Returns whether the condition is new or changed in status, reason or message.
        """
        now = _now()
        new_cond = dataclasses.replace(
            new_cond, last_transition_time=now, last_probe_time=now
        )
        for i, existing in enumerate(self):
            if existing.type == new_cond.type:
                if existing.status == new_cond.status:
                    new_cond.last_transition_time = existing.last_transition_time
                changed = (
                    existing.status != new_cond.status
                    or existing.reason != new_cond.reason
                    or existing.message != new_cond.message
                )
                self[i] = new_cond
                return changed
        self.insert(0, new_cond)
        return True

    def get_condition(self, condition_type) -> Optional[UpgradeCondition]:
        """Return a copy of the condition of the given type, or None."""
        cond = self._find(condition_type)
        return copy.copy(cond) if cond is not None else None

    def remove_condition(self, condition_type) -> bool:
        """Remove the condition of the given type; return whether one was removed."""
        for i, cond in enumerate(self):
            if cond.type == condition_type:
                del self[i]
                return True
        return False


def new_conditions(*args: UpgradeCondition) -> Conditions:
    """Build a set of conditions from the given ones."""
    conditions = Conditions()
    for cond in args:
        conditions.set_condition(cond)
    return conditions


@dataclass
class Update:
    """The release an upgrade targets."""

    version: str = ""
    channel: str = ""
    image: str = ""


@dataclass
class UpgradeConfigSpec:
    """Desired upgrade, when to start it and how to drain nodes."""

    desired: Update = field(default_factory=Update)
    upgrade_at: str = ""
    pdb_force_drain_timeout: int = 0
    type: UpgradeType = UpgradeType.OSD
    capacity_reservation: bool = False


@dataclass
class UpgradeHistory:
    """Record of one upgrade attempt."""

    version: str = ""
    phase: UpgradePhase | str = ""
    conditions: Conditions = field(default_factory=Conditions)
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None
    worker_start_time: Optional[datetime] = None
    worker_complete_time: Optional[datetime] = None


class UpgradeHistories(list):
    """History of upgrades, newest first."""

    def __init__(self, items: Iterable[UpgradeHistory] = ()):
        super().__init__(items)

    def get_history(self, version: str) -> Optional[UpgradeHistory]:
        """Return a copy of the history entry for the version, or None."""
        found = next((h for h in self if h.version == version), None)
        return copy.copy(found) if found is not None else None

    def set_history(self, history: UpgradeHistory) -> None:
        """Replace the entry with the same version, or prepend a new one."""
        for i, existing in enumerate(self):
            if existing.version == history.version:
                self[i] = history
                return
        self.insert(0, history)


@dataclass
class UpgradeConfigStatus:
    """Observed state of an UpgradeConfig."""

    history: UpgradeHistories = field(default_factory=UpgradeHistories)


@dataclass
class ObjectMeta:
    """Identifying metadata of a cluster object."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GroupVersion:
    """An API group and version."""

    group: str
    version: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


GROUP_VERSION = GroupVersion("upgrade.managed.openshift.io", "v1alpha1")


@dataclass
class UpgradeConfig:
    """An UpgradeConfig resource."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: UpgradeConfigSpec = field(default_factory=UpgradeConfigSpec)
    status: UpgradeConfigStatus = field(default_factory=UpgradeConfigStatus)
    kind: str = "UpgradeConfig"
    api_version: str = str(GROUP_VERSION)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def pdb_drain_timeout(self) -> timedelta:
        """The PDB force-drain grace period."""
        return timedelta(minutes=self.spec.pdb_force_drain_timeout)


@dataclass
class UpgradeConfigList:
    """A list of UpgradeConfig resources."""

    items: list[UpgradeConfig] = field(default_factory=list)
    kind: str = "UpgradeConfigList"
    api_version: str = str(GROUP_VERSION)


@dataclass(frozen=True)
class ReconcileRequest:
    """Identifies the object a reconcile pass is for."""

    name: str
    namespace: str = ""


@dataclass
class ReconcileResult:
    """Outcome of a reconcile pass: whether and when to run again."""

    requeue: bool = False
    requeue_after: timedelta = timedelta(0)


@dataclass
class Predicate:
    """Event filter; handlers left unset accept every event."""

    update_func: Optional[Callable[[Any, Any], bool]] = None
    create_func: Optional[Callable[[Any], bool]] = None
    delete_func: Optional[Callable[[Any], bool]] = None
    generic_func: Optional[Callable[[Any], bool]] = None

    def update(self, old, new) -> bool:
        return True if self.update_func is None else self.update_func(old, new)

    def create(self, obj) -> bool:
        return True if self.create_func is None else self.create_func(obj)

    def delete(self, obj) -> bool:
        return True if self.delete_func is None else self.delete_func(obj)

    def generic(self, obj) -> bool:
        return True if self.generic_func is None else self.generic_func(obj)