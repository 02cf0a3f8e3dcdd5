"""Tests for APPROVED_FINGERPRINT pinning of workflow sets."""

import pytest

from workflow_config import get_workflow_spec
from workflow_config.assembler import assemble_from_directory
from workflow_config.integrity import (
    PINFILE_NAME,
    ConfigIntegrityError,
    read_pinned_fingerprint,
    verify_fingerprint_pin,
)
from workflow_kernel.exceptions import ConfigError


class TestReadPin:

    def test_no_pin_file(self, tmp_path):
        assert read_pinned_fingerprint(tmp_path) is None

    def test_pin_is_stripped(self, tmp_path):
        (tmp_path / PINFILE_NAME).write_text("abc123\n\n")
        assert read_pinned_fingerprint(tmp_path) == "abc123"


class TestVerifyPin:

    def test_no_pin_is_a_no_op(self, tmp_path):
        verify_fingerprint_pin("any", "f" * 64, tmp_path)

    def test_matching_pin(self, tmp_path):
        (tmp_path / PINFILE_NAME).write_text("a" * 64)
        verify_fingerprint_pin("any", "a" * 64, tmp_path)

    def test_mismatch_carries_context(self, tmp_path):
        (tmp_path / PINFILE_NAME).write_text("a" * 64)

        with pytest.raises(ConfigIntegrityError) as exc_info:
            verify_fingerprint_pin("request_standard", "b" * 64, tmp_path)

        err = exc_info.value
        assert err.code == "CONFIG_INTEGRITY_MISMATCH"
        assert err.set_name == "request_standard"
        assert err.expected == "a" * 64
        assert err.actual == "b" * 64
        assert err.pin_path == tmp_path / PINFILE_NAME
        assert isinstance(err, ConfigError)


class TestPinnedSets:

    def test_pinned_set_loads(self, write_set, config_dir):
        set_dir = write_set()
        checksum = assemble_from_directory(set_dir).checksum
        (set_dir / PINFILE_NAME).write_text(checksum + "\n")

        spec = get_workflow_spec("test_set", config_dir=config_dir)
        assert spec.fingerprint == checksum

    def test_edit_after_pinning_is_rejected(self, write_set, config_dir, base_fragments):
        set_dir = write_set()
        checksum = assemble_from_directory(set_dir).checksum
        (set_dir / PINFILE_NAME).write_text(checksum)

        _, _, transitions = base_fragments
        transitions[1]["permission"] = "requests.anything"
        write_set(transitions=transitions)

        with pytest.raises(ConfigIntegrityError) as exc_info:
            get_workflow_spec("test_set", config_dir=config_dir)
        assert exc_info.value.expected == checksum
