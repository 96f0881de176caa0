"""Configuration sections read by the node keeper and upgrade config controllers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping


@dataclass
class NodeDrain:
    """Node drain settings; times are in minutes."""

    timeout: int = 0
    expected_node_drain_time: int = 0
    disable_drain_strategies: bool = False

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> "NodeDrain":
        return cls(
            timeout=int(data.get("timeOut", 0)),
            expected_node_drain_time=int(data.get("expectedNodeDrainTime", 0)),
            disable_drain_strategies=bool(data.get("disableDrainStrategies", False)),
        )


@dataclass
class NodeKeeperConfig:
    """Configuration of the node keeper controller."""

    node_drain: NodeDrain = field(default_factory=NodeDrain)

    def validate(self) -> None:
        """Raise ValueError if the configuration is not usable."""
        if self.node_drain.timeout < 0:
            raise ValueError("config nodeDrain timeOut is invalid")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeKeeperConfig":
        """Build from the parsed configuration document."""
        return cls(node_drain=NodeDrain._from_dict(data.get("nodeDrain") or {}))


@dataclass
class UpgradeWindow:
    """How long an upgrade may take to start, and how long to wait before alerting; minutes."""

    timeout: int = 120
    delay_trigger: int = 30


@dataclass
class UpgradeControllerConfig:
    """Configuration of the upgrade config controller."""

    upgrade_window: UpgradeWindow = field(default_factory=UpgradeWindow)

    def validate(self) -> None:
        """Raise ValueError if the configuration is not usable."""
        if self.upgrade_window.timeout < 0:
            raise ValueError("config upgrade window time out is invalid")
        if self.upgrade_window.delay_trigger < 0:
            raise ValueError("config upgrade window delay trigger is invalid")

    def upgrade_window_timeout(self) -> timedelta:
        return timedelta(minutes=self.upgrade_window.timeout)

    def upgrade_window_delay_trigger(self) -> timedelta:
        return timedelta(minutes=self.upgrade_window.delay_trigger)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UpgradeControllerConfig":
        """Build from the parsed configuration document, applying defaults."""
        window = data.get("upgradeWindow") or {}
        defaults = UpgradeWindow()
        return cls(
            upgrade_window=UpgradeWindow(
                timeout=int(window.get("timeOut", defaults.timeout)),
                delay_trigger=int(window.get("delayTrigger", defaults.delay_trigger)),
            )
        )