"""Tests for config module."""

import json
import os

from config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    DEFAULT_ITERATIONS,
    LOG_FILENAME,
    VAULT_FILENAME,
    AppConfig,
)
from storage import AtomicWriteStrategy, DirectWriteStrategy


class TestAppConfig:
    def test_paths_under_data_dir(self, tmp_path):
        config = AppConfig(str(tmp_path / "data"))
        assert os.path.isdir(config.user_data_dir)
        assert config.vault_path == os.path.join(config.user_data_dir, VAULT_FILENAME)
        assert config.config_path == os.path.join(config.user_data_dir, CONFIG_FILENAME)
        assert config.log_path == os.path.join(config.user_data_dir, LOG_FILENAME)

    def test_defaults_without_file(self, tmp_path):
        config = AppConfig(str(tmp_path))
        assert config.kdf_iterations == DEFAULT_ITERATIONS
        assert config.export_iterations == DEFAULT_ITERATIONS
        assert config.get("atomic_writes") is True
        assert config.get("excel_column_widths") == DEFAULT_CONFIG["excel_column_widths"]

    def test_defaults_are_copied(self, tmp_path):
        config = AppConfig(str(tmp_path))
        config.get("excel_column_widths")["A"] = 1
        assert DEFAULT_CONFIG["excel_column_widths"]["A"] == 40

    def test_partial_file_backfilled(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"kdf_iterations": 5000}))
        config = AppConfig(str(tmp_path))
        assert config.kdf_iterations == 5000
        assert config.export_iterations == DEFAULT_ITERATIONS

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{broken")
        config = AppConfig(str(tmp_path))
        assert config.kdf_iterations == DEFAULT_ITERATIONS

    def test_save_and_reload(self, tmp_path):
        config = AppConfig(str(tmp_path))
        config.set("export_iterations", 250_000)
        config.save()
        assert AppConfig(str(tmp_path)).export_iterations == 250_000

    def test_open_store_strategy(self, tmp_path):
        config = AppConfig(str(tmp_path))
        assert isinstance(config.open_store().strategy, AtomicWriteStrategy)
        config.set("atomic_writes", False)
        store = config.open_store()
        assert isinstance(store.strategy, DirectWriteStrategy)
        assert store.path() == config.vault_path

    def test_logger_attached_once(self, tmp_path):
        first = AppConfig(str(tmp_path))
        second = AppConfig(str(tmp_path))
        handlers = [
            h
            for h in second.logger.handlers
            if getattr(h, "baseFilename", None) == os.path.abspath(first.log_path)
        ]
        assert len(handlers) == 1
