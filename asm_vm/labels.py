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

"""Workload label parsing and canonical identity derivation."""

from __future__ import annotations

import re

from asm_vm.constants import (
    DEFAULT_REVISION,
    LABEL_PATTERN,
    REVISION_LABELS,
    SERVICE_NAME_LABELS,
)
from asm_vm.errors import ValidationError
from asm_vm.models import CanonicalIdentity, LabelSet

_LABEL_RE = re.compile(LABEL_PATTERN)


def parse_labels(text: str | None) -> LabelSet:
    """Parse ``key=value,key=value`` into an ordered LabelSet.

    Args:
        text: Comma-separated label pairs, or None/empty for no labels.

    Returns:
        Tuple of ``(key, value)`` pairs in input order, duplicates kept.

    Raises:
        ValidationError: If any entry is not a single ``key=value`` pair.
    """
    if not text:
        return ()
    pairs: list[tuple[str, str]] = []
    for entry in text.split(","):
        if not _LABEL_RE.fullmatch(entry):
            raise ValidationError(
                f"Invalid workload label '{entry}': expected key=value without spaces",
                remediation="--workload-labels app=foo,version=v1",
            )
        key, value = entry.split("=", 1)
        pairs.append((key, value))
    return tuple(pairs)


def labels_to_dict(labels: LabelSet) -> dict[str, str]:
    """Collapse a LabelSet into a mapping; the last occurrence of a key wins."""
    merged: dict[str, str] = {}
    for key, value in labels:
        merged[key] = value
    return merged


def _first_present(values: dict[str, str], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        if key in values:
            return values[key]
    return None


def derive_canonical_identity(labels: LabelSet, fallback_name: str) -> CanonicalIdentity:
    """Resolve the canonical service and revision from workload labels.

    Service: canonical-name, app.kubernetes.io/name, app, then *fallback_name*.
    Revision: canonical-revision, app.kubernetes.io/version, version, then "latest".
    A key repeated in *labels* resolves to its last value.
    """
    values = labels_to_dict(labels)
    service = _first_present(values, SERVICE_NAME_LABELS)
    revision = _first_present(values, REVISION_LABELS)
    return CanonicalIdentity(
        service=service if service is not None else fallback_name,
        revision=revision if revision is not None else DEFAULT_REVISION,
    )
