from datetime import datetime, timezone

import pytest

from managed_upgrade.api import (
    NotFoundError,
    ObjectMeta,
    ReconcileRequest,
    ReconcileResult,
    Update,
    UpgradeConfig,
    UpgradeConfigSpec,
    UpgradeHistories,
    UpgradeHistory,
    UpgradePhase,
)
from managed_upgrade.machineconfigpool import (
    MachineConfigPool,
    MachineConfigPoolReconciler,
    is_worker_pool,
    worker_predicate,
)

VERSION = "4.13.0"


def make_uc(phase, start=None):
    uc = UpgradeConfig(
        metadata=ObjectMeta(name="managed-upgrade-config", namespace="test-namespace"),
        spec=UpgradeConfigSpec(desired=Update(version=VERSION, channel="stable-4.13")),
    )
    uc.status.history = UpgradeHistories(
        [UpgradeHistory(version=VERSION, phase=phase, worker_start_time=start)]
    )
    return uc


class FakeClient:
    def __init__(self, pool=None, update_error=None):
        self.pool = pool
        self.updates = []
        self.update_error = update_error

    def get(self, kind, name, namespace=""):
        if self.pool is None:
            raise NotFoundError("MachineConfigPool", name)
        return self.pool

    def update_status(self, obj):
        if self.update_error is not None:
            raise self.update_error
        self.updates.append(obj)


class FakeManager:
    def __init__(self, uc):
        self.uc = uc

    def get(self):
        if self.uc is None:
            raise NotFoundError("UpgradeConfig", "managed-upgrade-config")
        return self.uc


class FakeBuilder:
    def __init__(self, uc):
        self.uc = uc
        self.calls = 0

    def new_manager(self, client):
        self.calls += 1
        return FakeManager(self.uc)


REQUEST = ReconcileRequest(name="worker")


def test_is_worker_pool():
    assert is_worker_pool("worker") is True
    assert is_worker_pool("master") is False


def test_predicate_accepts_only_worker():
    pred = worker_predicate()
    worker = MachineConfigPool(name="worker")
    master = MachineConfigPool(name="master")
    assert pred.update(master, worker) is True
    assert pred.update(worker, master) is False
    assert pred.create(worker) is True
    assert pred.create(master) is False
    assert pred.delete(master) is False
    assert pred.generic(worker) is True


def test_predicate_update_rejects_other_kinds():
    uc = make_uc(UpgradePhase.UPGRADING)
    uc.metadata.name = "worker"
    assert worker_predicate().update(None, uc) is False


def test_pool_not_found_returns_without_lookup():
    builder = FakeBuilder(make_uc(UpgradePhase.UPGRADING))
    result = MachineConfigPoolReconciler(FakeClient(), builder).reconcile(REQUEST)
    assert result == ReconcileResult()
    assert builder.calls == 0


def test_upgrade_config_not_found():
    client = FakeClient(MachineConfigPool(name="worker", machine_count=3))
    result = MachineConfigPoolReconciler(client, FakeBuilder(None)).reconcile(REQUEST)
    assert result == ReconcileResult()
    assert client.updates == []


def test_sets_worker_start_time_when_rollout_begins():
    uc = make_uc(UpgradePhase.UPGRADING)
    client = FakeClient(MachineConfigPool(name="worker", machine_count=3, updated_machine_count=0))
    MachineConfigPoolReconciler(client, FakeBuilder(uc)).reconcile(REQUEST)
    history = uc.status.history.get_history(VERSION)
    assert history.worker_start_time is not None
    assert history.worker_complete_time is None
    assert client.updates == [uc]


def test_sets_worker_complete_time_when_all_updated():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    uc = make_uc(UpgradePhase.UPGRADING, start=start)
    client = FakeClient(MachineConfigPool(name="worker", machine_count=3, updated_machine_count=3))
    MachineConfigPoolReconciler(client, FakeBuilder(uc)).reconcile(REQUEST)
    history = uc.status.history.get_history(VERSION)
    assert history.worker_start_time == start
    assert history.worker_complete_time is not None
    assert history.worker_complete_time >= start


def test_empty_pool_gets_both_times():
    uc = make_uc(UpgradePhase.UPGRADING)
    client = FakeClient(MachineConfigPool(name="worker"))
    MachineConfigPoolReconciler(client, FakeBuilder(uc)).reconcile(REQUEST)
    history = uc.status.history.get_history(VERSION)
    assert history.worker_start_time is not None
    assert history.worker_complete_time >= history.worker_start_time


def test_no_update_outside_upgrading_phase():
    uc = make_uc(UpgradePhase.PENDING)
    client = FakeClient(MachineConfigPool(name="worker", machine_count=3))
    result = MachineConfigPoolReconciler(client, FakeBuilder(uc)).reconcile(REQUEST)
    assert result == ReconcileResult()
    assert client.updates == []
    assert uc.status.history.get_history(VERSION).worker_start_time is None


def test_status_update_error_propagates():
    uc = make_uc(UpgradePhase.UPGRADING)
    client = FakeClient(
        MachineConfigPool(name="worker", machine_count=3),
        update_error=RuntimeError("update failed"),
    )
    with pytest.raises(RuntimeError, match="update failed"):
        MachineConfigPoolReconciler(client, FakeBuilder(uc)).reconcile(REQUEST)