"""
Version handling for the ``ProofBundle`` data-transfer format.

The proof-generation context and the ledger-facing context are released
independently, so every bundle carries the DTO version it was written with.
A bundle is accepted when ``MIN_SUPPORTED_DTO_VERSION <= version <=
CURRENT_DTO_VERSION``; older-but-supported bundles can be upgraded in place
of a copy.
"""

from __future__ import annotations

import dataclasses
import re
from typing import TYPE_CHECKING

from florin_wire.errors import SchemaViolation

if TYPE_CHECKING:
    from florin_wire.bundle import ProofBundle

CURRENT_DTO_VERSION = "1.0.0"
MIN_SUPPORTED_DTO_VERSION = "1.0.0"

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def parse_version(version: str) -> tuple[int, int, int, str]:
    """Parse a semantic version into ``(major, minor, patch, prerelease)``."""
    if not isinstance(version, str):
        raise SchemaViolation("version", f"expected a string, got {type(version).__name__}")
    m = _SEMVER_RE.match(version)
    if m is None:
        raise SchemaViolation("version", f"{version!r} is not a semantic version")
    return int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4) or ""


def _sort_key(version: str) -> tuple:
    major, minor, patch, pre = parse_version(version)
    # A release sorts after any of its pre-releases
    return (major, minor, patch, pre == "", pre)


def compare_versions(a: str, b: str) -> int:
    ka, kb = _sort_key(a), _sort_key(b)
    return (ka > kb) - (ka < kb)


def check_version_compatibility(version: str) -> bool:
    return (
        compare_versions(version, MIN_SUPPORTED_DTO_VERSION) >= 0
        and compare_versions(version, CURRENT_DTO_VERSION) <= 0
    )


def needs_upgrade(bundle: ProofBundle) -> bool:
    return compare_versions(bundle.version, CURRENT_DTO_VERSION) < 0


def version_relationship(bundle: ProofBundle) -> int:
    """-1, 0 or 1 as the bundle is older than, equal to or newer than current."""
    return compare_versions(bundle.version, CURRENT_DTO_VERSION)


def upgrade_bundle_to_current_version(bundle: ProofBundle) -> tuple[ProofBundle, bool]:
    """
    Return ``(bundle, upgraded)``.

    No layout changes exist between supported versions yet, so an upgrade
    only restamps the version.  Bundles are immutable; a new one is returned.
    """
    if not needs_upgrade(bundle):
        return bundle, False
    return dataclasses.replace(bundle, version=CURRENT_DTO_VERSION), True
