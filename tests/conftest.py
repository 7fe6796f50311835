import json
import logging

import pytest

from config import APP_NAME
from storage import AtomicWriteStrategy, DatabaseStore
from vault import Vault

# Keep PBKDF2 cheap in tests; production defaults live in config.py.
TEST_ITERATIONS = 1_000


@pytest.fixture
def store(tmp_path):
    return DatabaseStore(tmp_path / "vault.json", AtomicWriteStrategy())


@pytest.fixture
def make_vault(tmp_path):
    """Factory: make_vault(label, password, [(name, value, locked), ...]) -> open Vault."""
    opened = []

    def _make(label="vault", password="pw1", entries=()):
        store = DatabaseStore(tmp_path / label / "vault.json")
        vault = Vault(store, iterations=TEST_ITERATIONS, export_iterations=TEST_ITERATIONS)
        vault.init(password)
        for name, value, locked in entries:
            vault.create_entry(name, value)
            if locked:
                vault.toggle_lock(name)
        opened.append(vault)
        return vault

    yield _make

    for vault in opened:
        vault.close()


@pytest.fixture
def vault(make_vault):
    return make_vault()


@pytest.fixture
def fast_config(tmp_path):
    """A data dir whose config.json keeps KDF iterations low."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "config.json").write_text(
        json.dumps({"kdf_iterations": TEST_ITERATIONS, "export_iterations": TEST_ITERATIONS}),
        encoding="utf-8",
    )
    return data_dir


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    """AppConfig attaches a file handler per data dir; drop them between tests."""
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
