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

"""Error taxonomy for provisioning failures."""

from __future__ import annotations


class ProvisioningError(RuntimeError):
    """Base class for every fatal provisioning condition.

    Attributes:
        remediation: Command or hint the user can act on, or None.
    """

    def __init__(self, message: str, remediation: str | None = None) -> None:
        super().__init__(message)
        self.remediation = remediation


class ValidationError(ProvisioningError):
    """A required precondition is not met."""


class RetryExhausted(ProvisioningError):
    """A remote operation failed on every attempt of its retry budget."""


class PollTimeout(ProvisioningError):
    """A polled value never matched its expected shape within the time budget."""


class SubmissionError(ProvisioningError):
    """The provider rejected the instance-template creation request."""


class OperationFailed(ProvisioningError):
    """The creation operation did not reach DONE before its timeout."""
