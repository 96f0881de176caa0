# managed_upgrade

Building blocks for an operator that drives managed cluster upgrades: the
`UpgradeConfig` resource model, a client for the cluster's ClusterVersion,
HTTP availability checks for external dependencies, an Alertmanager silence
client, and reconcilers that move an upgrade through its phases.

## Installation

```
pip install .
```

To run the test suite as well:

```
pip install ".[test]"
pytest
```

## Modules

- `managed_upgrade.api`: the resource model. `UpgradeConfig` (with
  `ObjectMeta`, `UpgradeConfigSpec`, `Update`, `UpgradeConfigStatus`),
  `UpgradeHistory` and `UpgradeHistories` (`get_history`, `set_history`),
  `UpgradeCondition` and `Conditions` (`set_condition`, `get_condition`,
  `remove_condition`, `is_true_for`, `is_false_for`, `is_unknown_for`) and
  `new_conditions()`. The enums `UpgradeType`, `UpgradePhase`,
  `UpgradeConditionType` and `ConditionStatus`. `GroupVersion` and
  `GROUP_VERSION`. `NotFoundError`, raised when a resource is missing. The
  `ReconcileRequest`, `ReconcileResult` and `Predicate` types that the
  reconcilers share.
- `managed_upgrade.config`: operator constants such as `OPERATOR_NAME`,
  `OPERATOR_NAMESPACE` and `SYNC_PERIOD_DEFAULT`. `CMTarget.resolve()` fills in
  the default ConfigMap name, namespace and key. `get_operator_namespace()`
  reads `OPERATOR_NAMESPACE` from the environment and raises `LookupError`
  when it is unset. `use_routes()` is true when `ROUTES=true`.
- `managed_upgrade.controller_config`: `NodeKeeperConfig` (with `NodeDrain`)
  and `UpgradeControllerConfig` (with `UpgradeWindow`). Each has a
  `from_dict()` constructor and a `validate()` method that raises `ValueError`.
- `managed_upgrade.availability`: `get_availability_checkers()` builds
  `HTTPAvailabilityChecker` objects from an `ExtDependencyAvailabilityCheck`.
  `availability_check()` checks every URL concurrently and raises
  `AvailabilityError` when a check fails. Server errors are retried with
  jittered back-off through `retry()`. Client errors stop the retries at once
  through `StopRetry`.
- `managed_upgrade.alertmanager`: `AlertManagerSilenceClient(base_url)`
  creates, lists, deletes, updates and filters silences (`Silence`,
  `Matcher`) through the Alertmanager v2 HTTP API.
- `managed_upgrade.clusterversion`: `ClusterVersionClient` and
  `ClusterVersionBuilder`.
  - `get_cluster_version()` reads the ClusterVersion.
  - `has_upgrade_commenced()`, `has_upgrade_completed()` and
    `has_degraded_operators()` report on the cluster's state.
  - `ensure_desired_config()` sends JSON merge patches that point the cluster
    at the target image, or at the target channel and version.

  The module also has the helpers `get_history()`, `get_current_version()`,
  `get_current_version_minus_one()` and `check_upgrade_source()`.
- `managed_upgrade.machineconfigpool`: `MachineConfigPoolReconciler` records
  when workers start and finish upgrading. `worker_predicate()` and
  `is_worker_pool()` are also here.
- `managed_upgrade.nodekeeper`: `NodeKeeperReconciler` runs drain strategies
  on cordoned worker nodes and reports drain failures. `ignore_master_predicate()`
  and `has_master_label()` are also here.
- `managed_upgrade.upgradeconfig_controller`: `UpgradeConfigReconciler`
  validates, schedules and starts the upgrade, and records its phase. The
  module also has `status_changed_predicate()`, `managed_upgrade_predicate()`,
  `is_managed_upgrade()` and `report_upgrade_metrics()`.

## Example

```python
from managed_upgrade.api import (
    ObjectMeta, Update, UpgradeConfig, UpgradeConfigSpec,
    UpgradeHistory, UpgradePhase, UpgradeType,
)

uc = UpgradeConfig(
    metadata=ObjectMeta(name="managed-upgrade-config",
                        namespace="openshift-managed-upgrade-operator"),
    spec=UpgradeConfigSpec(
        desired=Update(version="4.13.1", channel="stable-4.13"),
        upgrade_at="2024-01-01T00:00:00Z",
        pdb_force_drain_timeout=60,
        type=UpgradeType.OSD,
    ),
)
uc.status.history.set_history(
    UpgradeHistory(version="4.13.1", phase=UpgradePhase.PENDING)
)
print(uc.status.history.get_history("4.13.1").phase)  # UpgradePhase.PENDING
print(uc.pdb_drain_timeout())                         # 1:00:00
```

## What the package does not do

This is a library. It has no command, and nothing in it starts a controller
loop or talks to a Kubernetes API server by itself.

The cluster client and every collaborator are supplied by the caller:

- The cluster client needs `get`, `list`, `patch` and `update_status`.
- The reconcilers take metrics, event, validation, scheduling, configuration
  and upgrader objects from their builders.
- The node keeper also takes a machinery object and a drain-strategy builder.

The package contains no implementations of those collaborators.