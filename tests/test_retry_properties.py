"""Property-based tests for retry logic with exponential backoff."""

from unittest.mock import patch

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from docsync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


@given(
    num_failures=st.integers(min_value=1, max_value=5),
    base_delay=st.floats(min_value=0.01, max_value=2.0),
    max_delay=st.floats(min_value=0.5, max_value=10.0),
)
@settings(max_examples=50, deadline=None)
def test_delays_grow_exponentially_up_to_max(num_failures: int, base_delay: float, max_delay: float):
    """Each wait doubles the previous one until it reaches max_delay."""
    log.info("test_delays_grow_exponentially_up_to_max", num_failures=num_failures)
    call_count = 0

    @exponential_backoff_retry(
        max_retries=num_failures,
        base_delay=base_delay,
        max_delay=max_delay,
        exceptions=(ValueError,),
    )
    def flaky():
        nonlocal call_count
        call_count += 1
        if call_count <= num_failures:
            raise ValueError(f"Simulated failure {call_count}")
        return "success"

    with patch("docsync.utils.retry.time.sleep") as sleep:
        result = flaky()

    assert result == "success", "Function should eventually succeed"
    assert call_count == num_failures + 1, f"Expected {num_failures + 1} calls, got {call_count}"
    delays = [call.args[0] for call in sleep.call_args_list]
    expected = [min(base_delay * (2**i), max_delay) for i in range(num_failures)]
    assert delays == pytest.approx(expected), f"Delays {delays} != {expected}"


def test_gives_up_after_max_retries():
    calls = []

    @exponential_backoff_retry(max_retries=2, base_delay=0.1, exceptions=(ValueError,))
    def always_fails():
        calls.append(1)
        raise ValueError("nope")

    with patch("docsync.utils.retry.time.sleep"):
        with pytest.raises(ValueError):
            always_fails()

    assert len(calls) == 3


def test_unlisted_exceptions_are_not_retried():
    calls = []

    @exponential_backoff_retry(max_retries=3, exceptions=(ValueError,))
    def wrong_kind():
        calls.append(1)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        wrong_kind()

    assert len(calls) == 1


def test_retry_if_rejects_permanent_errors():
    calls = []

    @exponential_backoff_retry(
        max_retries=3,
        exceptions=(ValueError,),
        retry_if=lambda error: "transient" in str(error),
    )
    def permanent():
        calls.append(1)
        raise ValueError("permanent failure")

    with patch("docsync.utils.retry.time.sleep") as sleep:
        with pytest.raises(ValueError):
            permanent()

    assert len(calls) == 1
    sleep.assert_not_called()
