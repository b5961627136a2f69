"""Tests for .templatemap.yml loading."""

import logging

from scanner.config import CONFIG_FILENAME, DEFAULT_DEPTH, MAX_DEPTH, load_config
from scanner.discovery import DEFAULT_EXCLUDE_DIRS, DEFAULT_EXTENSIONS


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, tmp_path):
        """Test a missing file gives the defaults."""
        config = load_config(tmp_path)

        assert config.include_ext == DEFAULT_EXTENSIONS
        assert config.exclude_dirs == DEFAULT_EXCLUDE_DIRS
        assert config.default_depth == DEFAULT_DEPTH

    def test_values_applied(self, tmp_path):
        """Test values from the file override the defaults."""
        (tmp_path / CONFIG_FILENAME).write_text(
            "include_ext: [YML]\n"
            "exclude_dirs: [generated]\n"
            "max_scan_depth: 3\n"
            "default_depth: 4\n"
            "debounce_seconds: 1.5\n",
            encoding="utf-8",
        )
        config = load_config(tmp_path)

        assert config.include_ext == {".yml"}
        assert "generated" in config.exclude_dirs
        assert ".git" in config.exclude_dirs
        assert config.max_scan_depth == 3
        assert config.default_depth == 4
        assert config.debounce_seconds == 1.5

    def test_depth_clamped(self, tmp_path):
        """Test default_depth is clamped to the traversal ceiling."""
        (tmp_path / CONFIG_FILENAME).write_text("default_depth: 50\n", encoding="utf-8")
        assert load_config(tmp_path).default_depth == MAX_DEPTH

    def test_malformed_file_warns(self, tmp_path, caplog):
        """Test invalid YAML logs a warning and keeps the defaults."""
        (tmp_path / CONFIG_FILENAME).write_text("include_ext: [.yml\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="scanner.config"):
            config = load_config(tmp_path)

        assert config.include_ext == DEFAULT_EXTENSIONS
        assert "Ignoring" in caplog.text

    def test_non_mapping_warns(self, tmp_path, caplog):
        """Test a top-level list is rejected."""
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="scanner.config"):
            load_config(tmp_path)

        assert "expected a mapping" in caplog.text

    def test_unknown_keys_warn(self, tmp_path, caplog):
        """Test unknown keys are reported."""
        (tmp_path / CONFIG_FILENAME).write_text("colour: blue\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="scanner.config"):
            load_config(tmp_path)

        assert "colour" in caplog.text
