"""Records when worker nodes start and finish upgrading, from the worker MachineConfigPool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from managed_upgrade.api import (
    NotFoundError,
    Predicate,
    ReconcileRequest,
    ReconcileResult,
    UpgradeConfig,
    UpgradePhase,
)

logger = logging.getLogger(__name__)

WORKER_POOL_NAME = "worker"


@dataclass
class MachineConfigPool:
    """A pool of machines sharing a machine configuration, with its rollout counts."""

    name: str = ""
    namespace: str = ""
    machine_count: int = 0
    updated_machine_count: int = 0


class KubeClient(Protocol):
    """The cluster API operations the reconciler needs."""

    def get(self, kind: type, name: str, namespace: str = "") -> Any: ...

    def update_status(self, obj: Any) -> None: ...


class UpgradeConfigManager(Protocol):
    def get(self) -> UpgradeConfig: ...


class UpgradeConfigManagerBuilder(Protocol):
    def new_manager(self, client: KubeClient) -> UpgradeConfigManager: ...


def is_worker_pool(name: str) -> bool:
    """Whether the pool name is that of the worker pool."""
    return name == WORKER_POOL_NAME


def worker_predicate() -> Predicate:
    """Event filter that only lets events about the worker pool through."""

    def on_update(old: Any, new: Any) -> bool:
        if not isinstance(new, MachineConfigPool):
            return False
        return is_worker_pool(new.name)

    def on_object(obj: Any) -> bool:
        return is_worker_pool(obj.name)

    return Predicate(
        update_func=on_update,
        create_func=on_object,
        delete_func=on_object,
        generic_func=on_object,
    )


class MachineConfigPoolReconciler:
    """Stamps worker start and completion times on the upgrade in progress."""

    def __init__(self, client: KubeClient, upgrade_config_manager_builder: UpgradeConfigManagerBuilder):
        self.client = client
        self.upgrade_config_manager_builder = upgrade_config_manager_builder

    def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Update the current upgrade's worker timings from the pool's rollout state."""
        logger.info(
            "Reconciling MachineConfigPool (namespace=%s, name=%s)",
            request.namespace,
            request.name,
        )
        try:
            pool = self.client.get(MachineConfigPool, request.name, request.namespace)
        except NotFoundError:
            return ReconcileResult()

        manager = self.upgrade_config_manager_builder.new_manager(self.client)
        try:
            uc = manager.get()
        except NotFoundError:
            return ReconcileResult()

        if not uc.status.history:
            return ReconcileResult()

        history = uc.status.history.get_history(uc.spec.desired.version)
        if history is None or history.phase != UpgradePhase.UPGRADING:
            return ReconcileResult()

        if pool.updated_machine_count == 0 and history.worker_start_time is None:
            history.worker_start_time = datetime.now(timezone.utc)

        if pool.machine_count == pool.updated_machine_count:
            if history.worker_start_time is not None and history.worker_complete_time is None:
                history.worker_complete_time = datetime.now(timezone.utc)

        uc.status.history.set_history(history)
        self.client.update_status(uc)
        return ReconcileResult()