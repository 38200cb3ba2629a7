# /*
# Copyright 2026 The ASM VM Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Tests for the bounded retrier and poller."""

from __future__ import annotations

from ipaddress import IPv4Address

import pytest

from asm_vm.constants import IPV4_PATTERN
from asm_vm.errors import PollTimeout, RetryExhausted
from asm_vm.retry import poll_for_ipv4, poll_until_match, retry


class Flaky:
    """Callable that fails a fixed number of times, then returns a value."""

    def __init__(self, failures: int, value: str = "ok") -> None:
        self.failures = failures
        self.value = value
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"transient failure {self.calls}")
        return self.value


class Sequence:
    """Callable returning successive outputs, repeating the last one."""

    def __init__(self, *outputs: str) -> None:
        self.outputs = list(outputs)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        index = min(self.calls, len(self.outputs)) - 1
        return self.outputs[index]


class TestRetry:
    """Test the bounded retrier."""

    def test_zero_attempts_never_calls(self, sleeps):
        """A zero budget raises immediately without invoking the operation."""
        op = Flaky(failures=0)
        with pytest.raises(RetryExhausted):
            retry(0, op, sleep=sleeps.append)
        assert op.calls == 0
        assert sleeps == []

    def test_first_attempt_succeeds(self, sleeps):
        op = Flaky(failures=0)
        assert retry(3, op, sleep=sleeps.append) == "ok"
        assert op.calls == 1
        assert sleeps == []

    def test_succeeds_on_last_attempt(self, sleeps):
        """Failures on attempts 1..N-1 then success returns after N-1 sleeps."""
        op = Flaky(failures=3)
        assert retry(4, op, sleep=sleeps.append) == "ok"
        assert op.calls == 4
        assert sleeps == [2, 2, 2]

    def test_exhaustion_raises_retry_exhausted(self, sleeps):
        op = Flaky(failures=10)
        with pytest.raises(RetryExhausted) as excinfo:
            retry(3, op, sleep=sleeps.append, description="Listing namespaces")
        assert op.calls == 3
        assert len(sleeps) == 2
        assert "Listing namespaces" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_refresh_runs_between_failed_attempts(self, sleeps):
        """Credential refresh happens before every retry, never after success."""
        refreshes = []
        op = Flaky(failures=2)
        retry(5, op, refresh=lambda: refreshes.append(op.calls), sleep=sleeps.append)
        assert refreshes == [1, 2]

    def test_refresh_failure_does_not_abort(self, sleeps):
        def broken_refresh():
            raise RuntimeError("gcloud unavailable")

        op = Flaky(failures=1)
        assert retry(2, op, refresh=broken_refresh, sleep=sleeps.append) == "ok"
        assert op.calls == 2


class TestPollUntilMatch:
    """Test the bounded poller."""

    def test_returns_first_match(self, sleeps):
        """Empty output three times, then an address: four probes."""
        op = Sequence("", "", "", "10.0.0.5")
        assert poll_until_match(5, IPV4_PATTERN, op, sleep=sleeps.append) == "10.0.0.5"
        assert op.calls == 4
        assert sleeps == [1, 1, 1]

    def test_times_out_after_budget(self, sleeps):
        op = Sequence("")
        with pytest.raises(PollTimeout):
            poll_until_match(3, IPV4_PATTERN, op, sleep=sleeps.append)
        assert op.calls == 3

    def test_zero_timeout_never_probes(self, sleeps):
        op = Sequence("10.0.0.5")
        with pytest.raises(PollTimeout):
            poll_until_match(0, IPV4_PATTERN, op, sleep=sleeps.append)
        assert op.calls == 0

    def test_failing_probe_is_not_fatal(self, sleeps):
        """An exception from a probe counts as "not yet"."""
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("service not found")
            return "DONE"

        assert poll_until_match(5, "DONE", op, sleep=sleeps.append) == "DONE"
        assert len(calls) == 3

    def test_non_matching_output_keeps_polling(self, sleeps):
        op = Sequence("PENDING", "RUNNING", "DONE")
        assert poll_until_match(5, "DONE", op, sleep=sleeps.append) == "DONE"
        assert op.calls == 3

    def test_pattern_must_match_whole_output(self, sleeps):
        op = Sequence("10.0.0.5 pending")
        with pytest.raises(PollTimeout):
            poll_until_match(2, IPV4_PATTERN, op, sleep=sleeps.append)

    def test_output_is_stripped(self, sleeps):
        op = Sequence("DONE\n")
        assert poll_until_match(1, "DONE", op, sleep=sleeps.append) == "DONE"


class TestPollForIpv4:
    """Test the typed IPv4 poll helper."""

    def test_returns_parsed_address(self, sleeps):
        op = Sequence("", "35.1.2.3")
        assert poll_for_ipv4(3, op, sleep=sleeps.append) == IPv4Address("35.1.2.3")

    def test_rejects_out_of_range_octets(self, sleeps):
        op = Sequence("300.1.2.3")
        with pytest.raises(PollTimeout):
            poll_for_ipv4(2, op, sleep=sleeps.append)
