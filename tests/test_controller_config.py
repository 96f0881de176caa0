from datetime import timedelta

import pytest

from managed_upgrade.controller_config import (
    NodeDrain,
    NodeKeeperConfig,
    UpgradeControllerConfig,
    UpgradeWindow,
)


def test_node_keeper_from_dict():
    cfg = NodeKeeperConfig.from_dict(
        {
            "nodeDrain": {
                "timeOut": 5,
                "expectedNodeDrainTime": 8,
                "disableDrainStrategies": True,
            }
        }
    )
    assert cfg.node_drain == NodeDrain(
        timeout=5, expected_node_drain_time=8, disable_drain_strategies=True
    )


def test_node_keeper_from_empty_dict_is_default():
    assert NodeKeeperConfig.from_dict({}) == NodeKeeperConfig()


def test_node_keeper_negative_timeout_is_invalid():
    cfg = NodeKeeperConfig(node_drain=NodeDrain(timeout=-1))
    with pytest.raises(ValueError, match="nodeDrain timeOut is invalid"):
        cfg.validate()


def test_node_keeper_zero_timeout_passes_and_keeps_value():
    cfg = NodeKeeperConfig(node_drain=NodeDrain(timeout=0))
    cfg.validate()
    assert cfg.node_drain.timeout == 0


def test_upgrade_config_from_dict_durations():
    cfg = UpgradeControllerConfig.from_dict(
        {"upgradeWindow": {"timeOut": 60, "delayTrigger": 10}}
    )
    assert cfg.upgrade_window_timeout() == timedelta(minutes=60)
    assert cfg.upgrade_window_delay_trigger() == timedelta(minutes=10)


def test_upgrade_config_defaults():
    cfg = UpgradeControllerConfig.from_dict({})
    assert cfg.upgrade_window.timeout == 120
    assert cfg.upgrade_window.delay_trigger == 30
    assert cfg == UpgradeControllerConfig()


def test_upgrade_config_negative_timeout_is_invalid():
    cfg = UpgradeControllerConfig(upgrade_window=UpgradeWindow(timeout=-1))
    with pytest.raises(ValueError, match="time out is invalid"):
        cfg.validate()


def test_upgrade_config_negative_delay_is_invalid():
    cfg = UpgradeControllerConfig(upgrade_window=UpgradeWindow(delay_trigger=-5))
    with pytest.raises(ValueError, match="delay trigger is invalid"):
        cfg.validate()