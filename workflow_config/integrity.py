"""
Configuration Integrity -- fingerprint pinning for approved workflow graphs.

When a set directory contains an APPROVED_FINGERPRINT file, the assembled
graph checksum must match the pinned value.  This prevents unreviewed edits
to a graph that tenants are provisioned from.

The pin file is a single line: the SHA-256 hex string of
``WorkflowGraphDef.checksum``.  Without a pin file the check is skipped
(draft/dev workflow).
"""

from __future__ import annotations

from pathlib import Path

from workflow_kernel.exceptions import ConfigError

PINFILE_NAME = "APPROVED_FINGERPRINT"


class ConfigIntegrityError(ConfigError):
    """Assembled graph checksum does not match the approved pin.

    Attributes:
        set_name: The configuration set name.
        expected: The pinned (approved) fingerprint.
        actual: The computed checksum.
        pin_path: Path to the APPROVED_FINGERPRINT file.
    """

    code: str = "CONFIG_INTEGRITY_MISMATCH"

    def __init__(
        self,
        set_name: str,
        expected: str,
        actual: str,
        pin_path: Path,
    ):
        self.set_name = set_name
        self.expected = expected
        self.actual = actual
        self.pin_path = pin_path
        super().__init__(
            f"Config integrity check failed for '{set_name}': "
            f"pinned fingerprint {expected[:16]}... != "
            f"assembled fingerprint {actual[:16]}... "
            f"(pin file: {pin_path})"
        )


def read_pinned_fingerprint(config_dir: Path) -> str | None:
    """Read the APPROVED_FINGERPRINT file from a set directory, if any."""
    pin_path = config_dir / PINFILE_NAME
    if not pin_path.is_file():
        return None
    return pin_path.read_text().strip()


def verify_fingerprint_pin(
    set_name: str,
    checksum: str,
    config_dir: Path,
) -> None:
    """Verify that the assembled checksum matches the pin file.

    No-op if no APPROVED_FINGERPRINT file exists.

    Raises:
        ConfigIntegrityError: If a pin exists and does not match.
    """
    pinned = read_pinned_fingerprint(config_dir)
    if pinned is None:
        return

    if checksum != pinned:
        raise ConfigIntegrityError(
            set_name=set_name,
            expected=pinned,
            actual=checksum,
            pin_path=config_dir / PINFILE_NAME,
        )
