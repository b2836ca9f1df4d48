"""Tests for the sliding-window rate limiter."""
from unittest.mock import patch

from id4me_login import rate_limit
from id4me_login.rate_limit import check_and_consume, check_login_attempt


def test_allows_up_to_limit_then_blocks():
    assert check_and_consume("ip-1", 2) == (True, None)
    assert check_and_consume("ip-1", 2) == (True, None)
    allowed, retry_after = check_and_consume("ip-1", 2)
    assert allowed is False
    assert 1 <= retry_after <= 60


def test_keys_are_independent():
    check_and_consume("ip-1", 1)
    assert check_and_consume("ip-2", 1) == (True, None)


def test_zero_limit_disables():
    for _ in range(10):
        assert check_and_consume("ip-1", 0) == (True, None)


def test_window_slides():
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1000.0):
        check_and_consume("ip-1", 1)
        assert check_and_consume("ip-1", 1)[0] is False
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1061.0):
        assert check_and_consume("ip-1", 1) == (True, None)


def test_idle_keys_are_dropped():
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1000.0):
        check_and_consume("ip-1", 5)
        check_and_consume("ip-2", 5)
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1030.0):
        check_and_consume("ip-2", 5)
    assert set(rate_limit._attempts) == {"ip-1", "ip-2"}
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1061.0):
        check_and_consume("ip-3", 5)
    # ip-1 has no attempt left in the window; ip-2 still has the one from t=1030
    assert set(rate_limit._attempts) == {"ip-2", "ip-3"}
    assert len(rate_limit._attempts["ip-2"]) == 1


def test_retry_after_counts_from_oldest_attempt():
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1000.0):
        check_and_consume("ip-1", 2)
    with patch("id4me_login.rate_limit.time.monotonic", return_value=1020.0):
        check_and_consume("ip-1", 2)
        assert check_and_consume("ip-1", 2) == (False, 40)


def test_login_attempts_are_per_ip():
    assert check_login_attempt("10.0.0.1", 1) == (True, None)
    assert check_login_attempt("10.0.0.1", 1)[0] is False
    assert check_login_attempt("10.0.0.2", 1) == (True, None)
    assert "login:10.0.0.1" in rate_limit._attempts


def test_login_attempts_without_ip_share_a_bucket():
    check_login_attempt(None, 1)
    assert check_login_attempt(None, 1)[0] is False
