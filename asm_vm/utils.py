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

"""Utility functions for command checks, name checks, and ASM versions."""

from __future__ import annotations

import re

import sh

from asm_vm.constants import ASM_IMAGE_VERSION_PATTERN, RESOURCE_NAME_PATTERN
from asm_vm.errors import ValidationError

_RESOURCE_NAME_RE = re.compile(RESOURCE_NAME_PATTERN)
_ASM_VERSION_RE = re.compile(ASM_IMAGE_VERSION_PATTERN)


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        ValidationError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise ValidationError(
            f"Required command '{cmd}' not found. Please install it first."
        ) from err


def is_resource_name(name: str) -> bool:
    """Whether *name* is a valid GCE resource name."""
    return bool(_RESOURCE_NAME_RE.fullmatch(name))


def asm_version_from_image(image: str) -> tuple[int, int, int] | None:
    """Extract ``(major, minor, patch)`` from an ASM istiod image reference.

    Args:
        image: Container image, e.g. ``gcr.io/gke-release/asm/pilot:1.9.1-asm.1``.

    Returns:
        Version tuple, or None if the tag is not an ASM release tag.
    """
    match = _ASM_VERSION_RE.search(image)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def format_version(version: tuple[int, ...]) -> str:
    return ".".join(str(part) for part in version)
