"""Reconciles the managed UpgradeConfig: validates, schedules and drives cluster upgrades."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from managed_upgrade.api import (
    NotFoundError,
    Predicate,
    ReconcileRequest,
    ReconcileResult,
    UpgradeConfig,
    UpgradeHistory,
    UpgradePhase,
    new_conditions,
)
from managed_upgrade.config import SYNC_PERIOD_DEFAULT, CMTarget
from managed_upgrade.controller_config import UpgradeControllerConfig

logger = logging.getLogger(__name__)

UPGRADECONFIG_CR_NAME = "managed-upgrade-config"
UPGRADING_REQUEUE = timedelta(minutes=1)


class NotConfiguredError(Exception):
    """No remote upgrade config manager is configured."""


class KubeClient(Protocol):
    """The cluster API operations the reconciler needs."""

    def get(self, kind: type, name: str, namespace: str = "") -> Any: ...

    def update_status(self, obj: Any) -> None: ...


def _name_of(obj: Any) -> str:
    name = getattr(obj, "name", None)
    if name is None:
        name = getattr(getattr(obj, "metadata", None), "name", "")
    return name or ""


def status_changed_predicate() -> Predicate:
    """Event filter that lets updates through only when the status is unchanged."""

    def on_update(old: Any, new: Any) -> bool:
        if old is None:
            logger.error("Update event has no old runtime object to update")
            return False
        if new is None:
            logger.error("Update event has no new runtime object for update")
            return False
        return new.status == old.status

    return Predicate(update_func=on_update)


def is_managed_upgrade(name: str) -> bool:
    """Whether the name is that of the managed UpgradeConfig."""
    return name == UPGRADECONFIG_CR_NAME


def managed_upgrade_predicate() -> Predicate:
    """Event filter that only lets events about the managed UpgradeConfig through."""

    def on_update(old: Any, new: Any) -> bool:
        return is_managed_upgrade(_name_of(new))

    def on_object(obj: Any) -> bool:
        return is_managed_upgrade(_name_of(obj))

    return Predicate(
        update_func=on_update,
        create_func=on_object,
        delete_func=on_object,
        generic_func=on_object,
    )


def report_upgrade_metrics(
    metrics_client: Any,
    name: str,
    version: str,
    upgrade_start: datetime,
    upgrade_end: datetime,
) -> None:
    """Publish statistics about the latest completed upgrade."""
    alerts = metrics_client.alerts_from_upgrade(upgrade_start, upgrade_end)
    metrics_client.update_metric_upgrade_result(name, version, alerts)


class UpgradeConfigReconciler:
    """Moves an UpgradeConfig through its phases and runs the cluster upgrader."""

    def __init__(
        self,
        client: KubeClient,
        metrics_client_builder: Any,
        cluster_upgrader_builder: Any,
        validation_builder: Any,
        config_manager_builder: Any,
        scheduler: Any,
        cv_client_builder: Any,
        event_manager_builder: Any,
        uc_mgr_builder: Any,
    ):
        self.client = client
        self.metrics_client_builder = metrics_client_builder
        self.cluster_upgrader_builder = cluster_upgrader_builder
        self.validation_builder = validation_builder
        self.config_manager_builder = config_manager_builder
        self.scheduler = scheduler
        self.cv_client_builder = cv_client_builder
        self.event_manager_builder = event_manager_builder
        self.uc_mgr_builder = uc_mgr_builder

    def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Run one reconcile pass for the UpgradeConfig named by the request."""
        logger.info(
            "Reconciling UpgradeConfig (namespace=%s, name=%s)", request.namespace, request.name
        )
        metrics = self.metrics_client_builder.new_client(self.client)
        events = self.event_manager_builder.new_manager(self.client)

        try:
            instance = self.client.get(UpgradeConfig, request.name, request.namespace)
        except NotFoundError:
            metrics.reset_ephemeral_metrics()
            logger.info("Reset metrics due to no upgrade config present.")
            return ReconcileResult()

        cv_client = self.cv_client_builder.new(self.client)
        cluster_version = cv_client.get_cluster_version()

        desired_version = instance.spec.desired.version
        history = instance.status.history.get_history(desired_version)
        if history is None:
            history = self._new_history(cv_client, instance)
            instance.status.history.insert(0, history)
            self.client.update_status(instance)

        phase = history.phase
        logger.info("Current cluster status: %s", phase)

        if phase in (UpgradePhase.NEW, UpgradePhase.PENDING):
            return self._validate_and_schedule(
                request, instance, history, cluster_version, metrics, events
            )
        if phase == UpgradePhase.UPGRADING:
            logger.info("Cluster detected as already upgrading.")
            target = CMTarget(namespace=request.namespace).resolve()
            cfm = self.config_manager_builder.new(self.client, target)
            upgrader = self.cluster_upgrader_builder.new_client(
                self.client, cfm, metrics, events, instance.spec.type
            )
            return self._upgrade_cluster(upgrader, instance)
        if phase == UpgradePhase.UPGRADED:
            logger.info("Cluster is already upgraded")
            report_upgrade_metrics(
                metrics,
                instance.name,
                desired_version,
                history.start_time,
                history.complete_time,
            )
            return ReconcileResult()
        if phase == UpgradePhase.FAILED:
            logger.info("Cluster has failed to upgrade")
            return ReconcileResult()

        logger.info("Unknown status")
        return ReconcileResult()

    def _new_history(self, cv_client: Any, instance: UpgradeConfig) -> UpgradeHistory:
        version = instance.spec.desired.version
        try:
            commenced = cv_client.has_upgrade_commenced(instance)
        except Exception as err:
            raise RuntimeError(f"could not tell if cluster was upgrading: {err}") from err
        if commenced:
            # The real start time is unknown; now is the best estimate.
            history = UpgradeHistory(
                version=version,
                phase=UpgradePhase.UPGRADING,
                start_time=datetime.now(timezone.utc),
            )
        else:
            history = UpgradeHistory(version=version, phase=UpgradePhase.NEW)
        history.conditions = new_conditions()
        return history

    def _validate_and_schedule(
        self,
        request: ReconcileRequest,
        instance: UpgradeConfig,
        history: UpgradeHistory,
        cluster_version: Any,
        metrics: Any,
        events: Any,
    ) -> ReconcileResult:
        logger.info("Validating UpgradeConfig")
        target = CMTarget(namespace=request.namespace).resolve()
        cfm = self.config_manager_builder.new(self.client, target)
        cfg = cfm.into(UpgradeControllerConfig)

        validator = self.validation_builder.new_client(cfm)
        try:
            result = validator.is_valid_upgrade_config(
                self.client, instance, cluster_version, logger
            )
        except Exception:
            logger.info("An error occurred while validating UpgradeConfig")
            metrics.update_metric_validation_failed(instance.name)
            raise
        if not result.is_valid:
            logger.info("An error occurred while validating UpgradeConfig: %s", result.message)
            metrics.update_metric_validation_failed(instance.name)
            return ReconcileResult()

        metrics.update_metric_validation_succeeded(instance.name)
        if not result.is_available_update:
            logger.info(result.message)
            return ReconcileResult()
        logger.info("UpgradeConfig validated and confirmed for upgrade.")

        upgrade_type = instance.spec.type
        logger.info("Checking if cluster can commence %s upgrade.", upgrade_type)
        schedule = self.scheduler.is_ready_to_upgrade(instance, cfg.upgrade_window_timeout())
        if schedule.is_ready:
            uc_mgr = self.uc_mgr_builder.new_manager(self.client)
            try:
                remote_changed = uc_mgr.refresh()
            except NotConfiguredError:
                logger.info("No UpgradeConfig manager configured, kill-switch ignored")
                remote_changed = False
            if remote_changed:
                logger.info(
                    "The cluster's upgrade policy has changed, so the operator will re-reconcile."
                )
                return ReconcileResult()

            upgrader = self.cluster_upgrader_builder.new_client(
                self.client, cfm, metrics, events, upgrade_type
            )
            now = datetime.now(timezone.utc)
            history.phase = UpgradePhase.UPGRADING
            history.start_time = now
            history.version = instance.spec.desired.version
            instance.status.history.set_history(history)
            self.client.update_status(instance)

            logger.info("Cluster is commencing %s upgrade at %s.", upgrade_type, now)
            return self._upgrade_cluster(upgrader, instance)

        history.phase = UpgradePhase.PENDING
        instance.status.history.set_history(history)
        self.client.update_status(instance)

        # Reconcile closer to the upgrade time if it falls before the next sync.
        until = schedule.time_until_upgrade
        if until is not None and timedelta(0) < until < SYNC_PERIOD_DEFAULT:
            return ReconcileResult(requeue_after=until)
        return ReconcileResult()

    def _upgrade_cluster(self, upgrader: Any, uc: UpgradeConfig) -> ReconcileResult:
        upgrade_error: Optional[Exception] = None
        phase = None
        try:
            phase = upgrader.upgrade_cluster(uc, logger)
        except Exception as err:
            upgrade_error = err

        history = uc.status.history.get_history(uc.spec.desired.version)
        if phase is not None:
            history.phase = phase
        if phase == UpgradePhase.UPGRADED:
            history.complete_time = datetime.now(timezone.utc)
        uc.status.history.set_history(history)

        try:
            self.client.update_status(uc)
        except Exception as status_error:
            if upgrade_error is None:
                raise
            raise upgrade_error from status_error
        if upgrade_error is not None:
            raise upgrade_error
        return ReconcileResult(requeue_after=UPGRADING_REQUEUE)