from datetime import timedelta
from unittest import mock

import pytest
import responses

from managed_upgrade.availability import (
    AvailabilityError,
    ExtDependencyAvailabilityCheck,
    HTTPAvailabilityChecker,
    HTTPConfig,
    HTTPTargets,
    StopRetry,
    get_availability_checkers,
    get_http_availability_checker,
    retry,
)

URL = "http://service.example.com/health"


@pytest.fixture
def http():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def test_retry_returns_result_on_success():
    calls = []

    def func():
        calls.append(1)
        return "done"

    assert retry(3, 1.0, func) == "done"
    assert len(calls) == 1


def test_retry_stop_raises_wrapped_error_immediately():
    calls = []
    inner = ValueError("stop here")

    def func():
        calls.append(1)
        raise StopRetry(inner)

    with pytest.raises(ValueError) as excinfo:
        retry(3, 1.0, func)
    assert excinfo.value is inner
    assert len(calls) == 1


def test_retry_exhausts_attempts_with_growing_sleeps():
    calls = []

    def func():
        calls.append(1)
        raise RuntimeError(f"failure {len(calls)}")

    with mock.patch("managed_upgrade.availability.time.sleep") as sleep:
        with pytest.raises(RuntimeError, match="failure 3"):
            retry(3, 1.0, func)
    assert len(calls) == 3
    waits = [c.args[0] for c in sleep.call_args_list]
    assert len(waits) == 2
    assert 1.0 <= waits[0] < 1.5
    assert waits[1] > waits[0]


def test_retry_recovers_after_failures():
    outcomes = iter([RuntimeError("a"), None])

    def func():
        outcome = next(outcomes)
        if outcome is not None:
            raise outcome
        return 7

    with mock.patch("managed_upgrade.availability.time.sleep") as sleep:
        assert retry(3, 1.0, func) == 7
    assert sleep.call_count == 1


def test_checker_passes_on_success(http):
    http.add(responses.GET, URL, status=200)
    checker = HTTPAvailabilityChecker(targets=[URL], timeout=timedelta(seconds=5))
    assert checker.availability_check() is None
    assert len(http.calls) == 1


def test_checker_client_error_is_not_retried(http):
    http.add(responses.GET, URL, status=404)
    checker = HTTPAvailabilityChecker(targets=[URL], timeout=timedelta(seconds=5))
    with pytest.raises(AvailabilityError, match="client error"):
        checker.availability_check()
    assert len(http.calls) == 1


def test_checker_server_error_is_retried(http):
    http.add(responses.GET, URL, status=503)
    checker = HTTPAvailabilityChecker(targets=[URL], timeout=timedelta(seconds=5))
    with mock.patch("managed_upgrade.availability.time.sleep") as sleep:
        with pytest.raises(AvailabilityError, match="server error"):
            checker.availability_check()
    assert len(http.calls) == 3
    assert sleep.call_count == 2


def test_checker_connection_error_is_reported(http):
    checker = HTTPAvailabilityChecker(targets=[URL])
    with mock.patch("managed_upgrade.availability.time.sleep"):
        with pytest.raises(AvailabilityError, match="client request error"):
            checker.availability_check()


def test_checker_fails_if_any_target_fails(http):
    other = "http://other.example.com/"
    http.add(responses.GET, URL, status=200)
    http.add(responses.GET, other, status=403)
    checker = HTTPAvailabilityChecker(targets=[URL, other])
    with pytest.raises(AvailabilityError, match="other.example.com"):
        checker.availability_check()


def test_get_http_checker_from_config():
    config = HTTPConfig(targets=[URL], timeout=timedelta(seconds=3))
    checker = get_http_availability_checker(config)
    assert checker.targets == [URL]
    assert checker.timeout == timedelta(seconds=3)


def test_get_http_checker_rejects_other_config():
    with pytest.raises(TypeError, match="HTTPConfig"):
        get_http_availability_checker({"targets": [URL]})


def test_get_availability_checkers_without_urls():
    assert get_availability_checkers(ExtDependencyAvailabilityCheck()) == []


def test_get_availability_checkers_with_urls():
    cfg = ExtDependencyAvailabilityCheck(http=HTTPTargets(timeout=9, urls=[URL]))
    checkers = get_availability_checkers(cfg)
    assert checkers == [HTTPAvailabilityChecker(targets=[URL], timeout=timedelta(seconds=9))]
    assert cfg.timeout() == timedelta(seconds=9)