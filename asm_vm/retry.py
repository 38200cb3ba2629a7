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

"""Bounded retry and bounded polling of remote operations."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from ipaddress import IPv4Address
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from asm_vm import logger
from asm_vm.constants import IPV4_PATTERN, POLL_INTERVAL_SECONDS, RETRY_WAIT_SECONDS
from asm_vm.errors import PollTimeout, RetryExhausted

T = TypeVar("T")


def _describe(op: Callable, description: str | None) -> str:
    return description or getattr(op, "__name__", "remote operation")


# ============================================================================
# Bounded retrier
# ============================================================================

def retry(
    max_attempts: int,
    op: Callable[[], T],
    *,
    refresh: Callable[[], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str | None = None,
) -> T:
    """Invoke *op* up to *max_attempts* times with a fixed wait between attempts.

    An attempt fails when *op* raises. Intermediate failures are only logged;
    the caller sees either the first successful result or RetryExhausted.

    Args:
        max_attempts: Attempts allowed, including the first one.
        op: Zero-argument callable performing the remote operation.
        refresh: Re-acquires the cluster credential context after a failed
            attempt, or None for operations that do not use it.
        sleep: Sleep function, injectable for tests.
        description: Name used in log lines and errors.

    Returns:
        The result of the first successful attempt.

    Raises:
        RetryExhausted: If every attempt failed or *max_attempts* is zero.
    """
    name = _describe(op, description)
    if max_attempts <= 0:
        raise RetryExhausted(f"{name} was not attempted: retry budget is {max_attempts}")

    def _before_sleep(state: RetryCallState) -> None:
        logger.info("%s failed (attempt %d/%d): %s",
                    name, state.attempt_number, max_attempts, state.outcome.exception())
        if refresh is None:
            return
        try:
            refresh()
        except Exception as err:
            logger.warning("Could not refresh cluster credentials: %s", err)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(RETRY_WAIT_SECONDS),
        retry=retry_if_exception_type(Exception),
        before_sleep=_before_sleep,
        sleep=sleep,
    )
    try:
        return retrying(op)
    except RetryError as err:
        raise RetryExhausted(f"{name} failed after {max_attempts} attempts") from err.last_attempt.exception()


# ============================================================================
# Bounded poller
# ============================================================================

def poll_until_match(
    timeout_seconds: int,
    pattern: str | re.Pattern[str],
    op: Callable[[], object],
    *,
    sleep: Callable[[float], None] = time.sleep,
    description: str | None = None,
) -> str:
    """Probe *op* once per second until its output fully matches *pattern*.

    Empty output, non-matching output and raised exceptions all mean
    "not yet"; only running out of probes is fatal.

    Args:
        timeout_seconds: Maximum number of probes, one per second.
        pattern: Regular expression the stripped output must fully match.
        op: Zero-argument callable reading the remote value.
        sleep: Sleep function, injectable for tests.
        description: Name used in log lines and errors.

    Returns:
        The first matching output.

    Raises:
        PollTimeout: If no probe matched within *timeout_seconds* probes.
    """
    name = _describe(op, description)
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    if timeout_seconds <= 0:
        raise PollTimeout(f"{name} was not polled: timeout is {timeout_seconds}s")

    def _probe() -> str:
        output = op()
        return "" if output is None else str(output).strip()

    def _not_matched(output: str) -> bool:
        return not output or regex.fullmatch(output) is None

    def _before_sleep(state: RetryCallState) -> None:
        if state.outcome.failed:
            logger.debug("%s probe %d failed: %s", name, state.attempt_number, state.outcome.exception())
        else:
            logger.debug("%s probe %d: %r not ready", name, state.attempt_number, state.outcome.result())

    retrying = Retrying(
        stop=stop_after_attempt(timeout_seconds),
        wait=wait_fixed(POLL_INTERVAL_SECONDS),
        retry=retry_if_exception_type(Exception) | retry_if_result(_not_matched),
        before_sleep=_before_sleep,
        sleep=sleep,
    )
    try:
        return retrying(_probe)
    except RetryError as err:
        raise PollTimeout(f"{name} did not become ready within {timeout_seconds}s") from err


def poll_for_ipv4(
    timeout_seconds: int,
    op: Callable[[], object],
    *,
    sleep: Callable[[float], None] = time.sleep,
    description: str | None = None,
) -> IPv4Address:
    """Poll *op* until it yields an IPv4 address and return it parsed."""
    output = poll_until_match(timeout_seconds, IPV4_PATTERN, op, sleep=sleep, description=description)
    return IPv4Address(output)
