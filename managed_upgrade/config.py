"""Operator-wide constants and the location of the operator's configuration."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from datetime import timedelta

OPERATOR_NAME = "managed-upgrade-operator"
OPERATOR_NAMESPACE = "openshift-managed-upgrade-operator"
SYNC_PERIOD_DEFAULT = timedelta(minutes=5)
CONFIG_MAP_NAME = OPERATOR_NAME + "-config"
CONFIG_FIELD = "config.yaml"
ENV_ROUTES = "ROUTES"
ENV_OPERATOR_NAMESPACE = "OPERATOR_NAMESPACE"


def get_operator_namespace() -> str:
    """Return the namespace the operator runs in, taken from the environment."""
    namespace = os.environ.get(ENV_OPERATOR_NAMESPACE, "")
    if not namespace:
        raise LookupError(f"{ENV_OPERATOR_NAMESPACE} must be set")
    return namespace


def use_routes() -> bool:
    """Whether routes should be used, as set by the ROUTES environment variable."""
    return os.environ.get(ENV_ROUTES) == "true"


@dataclass
class CMTarget:
    """Where the operator's configuration ConfigMap lives."""

    name: str = ""
    namespace: str = ""
    config_key: str = ""

    def resolve(self) -> "CMTarget":
        """Return a copy with every unset field filled with the operator default."""
        return dataclasses.replace(
            self,
            name=self.name or CONFIG_MAP_NAME,
            namespace=self.namespace or get_operator_namespace(),
            config_key=self.config_key or CONFIG_FIELD,
        )