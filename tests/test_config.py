import pytest

from managed_upgrade.config import (
    CONFIG_FIELD,
    CONFIG_MAP_NAME,
    CMTarget,
    get_operator_namespace,
    use_routes,
)


def test_resolve_fills_defaults(monkeypatch):
    monkeypatch.setenv("OPERATOR_NAMESPACE", "test-namespace")
    target = CMTarget().resolve()
    assert target.name == "managed-upgrade-operator-config"
    assert target.config_key == "config.yaml"
    assert target.namespace == "test-namespace"


def test_resolve_keeps_given_values(monkeypatch):
    monkeypatch.delenv("OPERATOR_NAMESPACE", raising=False)
    target = CMTarget(name="cm", namespace="ns", config_key="key").resolve()
    assert target == CMTarget(name="cm", namespace="ns", config_key="key")


def test_resolve_leaves_original_untouched(monkeypatch):
    monkeypatch.setenv("OPERATOR_NAMESPACE", "ns")
    original = CMTarget()
    resolved = original.resolve()
    assert original == CMTarget()
    assert resolved.name == CONFIG_MAP_NAME
    assert resolved.config_key == CONFIG_FIELD


def test_resolve_without_namespace_raises(monkeypatch):
    monkeypatch.delenv("OPERATOR_NAMESPACE", raising=False)
    with pytest.raises(LookupError):
        CMTarget().resolve()


def test_get_operator_namespace_reads_environment(monkeypatch):
    monkeypatch.setenv("OPERATOR_NAMESPACE", "openshift-managed-upgrade-operator")
    assert get_operator_namespace() == "openshift-managed-upgrade-operator"


def test_get_operator_namespace_empty_raises(monkeypatch):
    monkeypatch.setenv("OPERATOR_NAMESPACE", "")
    with pytest.raises(LookupError):
        get_operator_namespace()


@pytest.mark.parametrize(
    "value, expected",
    [("true", True), ("false", False), ("TRUE", False), ("", False)],
)
def test_use_routes(monkeypatch, value, expected):
    monkeypatch.setenv("ROUTES", value)
    assert use_routes() is expected


def test_use_routes_unset(monkeypatch):
    monkeypatch.delenv("ROUTES", raising=False)
    assert use_routes() is False