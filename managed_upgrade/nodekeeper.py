"""Watches cordoned worker nodes during an upgrade and applies drain strategies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping, Protocol

from managed_upgrade.api import (
    NotFoundError,
    Predicate,
    ReconcileRequest,
    ReconcileResult,
    UpgradeConfig,
    UpgradePhase,
)
from managed_upgrade.config import CMTarget
from managed_upgrade.controller_config import NodeKeeperConfig

logger = logging.getLogger(__name__)

MASTER_LABEL = "node-role.kubernetes.io/master"
WORKER_POOL = "worker"
REQUEUE_INTERVAL = timedelta(minutes=1)


@dataclass
class Node:
    """A cluster node."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    unschedulable: bool = False


class KubeClient(Protocol):
    def get(self, kind: type, name: str, namespace: str = "") -> Any: ...


def _labels_of(obj: Any) -> Mapping[str, str]:
    labels = getattr(obj, "labels", None)
    if labels is None:
        labels = getattr(getattr(obj, "metadata", None), "labels", None)
    return labels or {}


def has_master_label(labels: Mapping[str, str]) -> bool:
    """Whether the labels mark a control-plane node."""
    return MASTER_LABEL in labels


def ignore_master_predicate() -> Predicate:
    """Event filter that drops events about master nodes."""

    def on_update(old: Any, new: Any) -> bool:
        if not isinstance(new, Node):
            return False
        return not has_master_label(new.labels)

    def on_object(obj: Any) -> bool:
        return not has_master_label(_labels_of(obj))

    return Predicate(
        update_func=on_update,
        create_func=on_object,
        delete_func=on_object,
        generic_func=on_object,
    )


class NodeKeeperReconciler:
    """Drives drain strategies for cordoned worker nodes and reports drain failures."""

    def __init__(
        self,
        client: KubeClient,
        config_manager_builder: Any,
        machinery: Any,
        metrics_client_builder: Any,
        drain_strategy_builder: Any,
        upgrade_config_manager_builder: Any,
    ):
        self.client = client
        self.config_manager_builder = config_manager_builder
        self.machinery = machinery
        self.metrics_client_builder = metrics_client_builder
        self.drain_strategy_builder = drain_strategy_builder
        self.upgrade_config_manager_builder = upgrade_config_manager_builder

    def _current_upgrade(self) -> UpgradeConfig:
        manager = self.upgrade_config_manager_builder.new_manager(self.client)
        return manager.get()

    def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Check one node; requeue while it stays cordoned during a worker upgrade."""
        try:
            uc = self._current_upgrade()
        except NotFoundError:
            return ReconcileResult()

        upgrading = self.machinery.is_upgrading(self.client, WORKER_POOL)
        history = uc.status.history.get_history(uc.spec.desired.version)
        if not (
            history is not None
            and history.phase == UpgradePhase.UPGRADING
            and upgrading.is_upgrading
        ):
            return ReconcileResult()

        try:
            node = self.client.get(Node, request.name, request.namespace)
        except NotFoundError:
            return ReconcileResult()

        cordoned = self.machinery.is_node_cordoned(node)
        metrics = self.metrics_client_builder.new_client(self.client)
        if not cordoned.is_cordoned:
            metrics.reset_metric_node_drain_failed(node.name)
            return ReconcileResult()

        target = CMTarget().resolve()
        config_manager = self.config_manager_builder.new(self.client, target)
        cfg = config_manager.into(NodeKeeperConfig)

        if not cfg.node_drain.disable_drain_strategies:
            strategy = self.drain_strategy_builder.new_node_drain_strategy(
                self.client, logger, uc, cfg.node_drain
            )
            for outcome in strategy.execute(node, logger):
                logger.info(outcome.message)
            if strategy.has_failed(node, logger):
                logger.info("Node drain timed out %s. Alerting.", node.name)
                metrics.update_metric_node_drain_failed(node.name)
                return ReconcileResult(requeue_after=REQUEUE_INTERVAL)
            metrics.reset_metric_node_drain_failed(node.name)

        return ReconcileResult(requeue_after=REQUEUE_INTERVAL)