"""Tests for the retry policy."""

import errno

import pytest

from mediacache.errors import DecodeError, TransientIOError, ZeroByteOutput
from mediacache.retry import backoff_delay, with_retries


class TestBackoffDelay:
    """Tests for backoff_delay."""

    def test_exponential(self):
        """Test the delay doubles per attempt."""
        assert backoff_delay(1, 0.75, 10.0) == 0.75
        assert backoff_delay(2, 0.75, 10.0) == 1.5
        assert backoff_delay(3, 0.75, 10.0) == 3.0

    def test_capped(self):
        """Test the delay never exceeds the maximum."""
        assert backoff_delay(10, 0.75, 10.0) == 10.0


class TestWithRetries:
    """Tests for with_retries."""

    def test_success_first_try(self, logger):
        """Test a successful call runs once and returns its value."""
        calls = []

        def op():
            calls.append(1)
            return 'done'

        assert with_retries(op, 'op', attempts=3, base_delay=0, log=logger) == 'done'
        assert len(calls) == 1

    def test_retries_transient_then_succeeds(self, logger):
        """Test transient failures are retried."""
        failures = [OSError(errno.ENOSPC, 'no space'), ZeroByteOutput('empty')]

        def op():
            if failures:
                raise failures.pop(0)
            return 42

        assert with_retries(op, 'op', attempts=3, base_delay=0, log=logger) == 42
        assert failures == []

    def test_final_attempt_error_propagates(self, logger):
        """Test the last transient error is raised unchanged."""
        calls = []

        def op():
            calls.append(1)
            raise TransientIOError(f"busy {len(calls)}")

        with pytest.raises(TransientIOError, match='busy 5'):
            with_retries(op, 'op', attempts=5, base_delay=0, log=logger)
        assert len(calls) == 5

    def test_fatal_error_not_retried(self, logger):
        """Test non-retryable errors surface after one attempt."""
        calls = []

        def op():
            calls.append(1)
            raise DecodeError('corrupt')

        with pytest.raises(DecodeError):
            with_retries(op, 'op', attempts=5, base_delay=0, log=logger)
        assert len(calls) == 1

    def test_missing_file_not_retried(self, logger):
        """Test FileNotFoundError is fatal."""
        calls = []

        def op():
            calls.append(1)
            raise FileNotFoundError(errno.ENOENT, 'gone')

        with pytest.raises(FileNotFoundError):
            with_retries(op, 'op', attempts=3, base_delay=0, log=logger)
        assert len(calls) == 1

    def test_sleeps_with_backoff(self, mocker, logger):
        """Test the wait between attempts follows the backoff schedule."""
        sleep = mocker.patch('time.sleep')
        failures = [TransientIOError('a'), TransientIOError('b')]

        def op():
            if failures:
                raise failures.pop(0)
            return 'ok'

        with_retries(op, 'op', attempts=3, base_delay=0.75, max_delay=10.0, log=logger)

        delays = [call.args[0] for call in sleep.call_args_list]
        assert delays == [0.75, 1.5]

    def test_logs_each_retry(self, caplog, logger):
        """Test each retry is logged at WARNING with the label."""
        failures = [TransientIOError('a')]

        def op():
            if failures:
                raise failures.pop(0)

        with caplog.at_level('WARNING'):
            with_retries(op, 'jpeg write img_w300.jpg', attempts=3, base_delay=0, log=logger)

        assert 'jpeg write img_w300.jpg failed (attempt 1/3)' in caplog.text
