"""
config.py – Application configuration and constants.

This module defines AppConfig, a central container for:
  - Application-wide constants (name, version, vault and bundle defaults).
  - The user configuration (KDF iterations, write strategy, report column
    widths) stored as a JSON file on disk and exposed through a simple
    dict-like interface.
  - Helpers shared across modules: OS-appropriate data-directory
    resolution, logger setup and construction of the vault's DatabaseStore.

Apart from storage.py (needed by open_store), no other application module is
imported here, so config.py sits near the bottom of the dependency graph.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import appdirs

# ---------------------------------------------------------------------------
# Application-level constants – these never change at runtime.
# ---------------------------------------------------------------------------

APP_NAME = "Strongbox"

APP_VERSION = "0.1.0"

# PBKDF2-HMAC-SHA256 rounds used for new vaults and new export bundles.
DEFAULT_ITERATIONS = 100_000

VAULT_FILENAME = "vault.json"
CONFIG_FILENAME = "config.json"
LOG_FILENAME = "strongbox.log"

# ---------------------------------------------------------------------------
# Default values written to config.json on first run.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    # Rounds for the master credential of a newly initialised vault.
    "kdf_iterations": DEFAULT_ITERATIONS,
    # Rounds for the independent credential of each export bundle.
    "export_iterations": DEFAULT_ITERATIONS,
    # Replace the vault file via temp file + rename instead of truncating it.
    "atomic_writes": True,
    # Column widths (in characters) for the Excel inventory report.
    "excel_column_widths": {"A": 40, "B": 12},
}


class AppConfig:
    """
    Manages application configuration, file paths and logging.

    On instantiation the class:
      1. Resolves (or accepts) the user-data directory.
      2. Derives all relevant file paths from that directory.
      3. Sets up a rotating log handler.
      4. Loads (or creates) the JSON configuration file.

    Parameters
    ----------
    data_dir : str, optional
        Directory holding the vault and its settings.  Defaults to the
        OS-standard user-data directory for APP_NAME.

    Attributes
    ----------
    user_data_dir : str
        Absolute path of the directory that stores all persistent data.
    vault_path : str
        The serialized Database snapshot.
    config_path : str
        JSON configuration file.
    log_path : str
        Rotating application log.
    data : dict
        The currently loaded configuration values (mutable at runtime).
    logger : logging.Logger
        Shared Python logger for the whole application.
    """

    def __init__(self, data_dir: Optional[str] = None) -> None:
        self.user_data_dir: str = self._get_user_data_dir(data_dir)

        self.vault_path:  str = os.path.join(self.user_data_dir, VAULT_FILENAME)
        self.config_path: str = os.path.join(self.user_data_dir, CONFIG_FILENAME)
        self.log_path:    str = os.path.join(self.user_data_dir, LOG_FILENAME)

        self.logger: logging.Logger = self._setup_logger()

        self.data: dict = self._load()

        self.logger.info("AppConfig initialised; data dir: %s", self.user_data_dir)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user_data_dir(data_dir: Optional[str]) -> str:
        """
        Return (and create if necessary) the data directory.

        An explicit *data_dir* wins; otherwise appdirs picks the OS-standard
        location (e.g. ~/.local/share/Strongbox on Linux).
        """
        path = data_dir or appdirs.user_data_dir(APP_NAME)
        path = os.path.abspath(os.path.expanduser(path))
        os.makedirs(path, exist_ok=True)
        return path

    def _setup_logger(self) -> logging.Logger:
        """
        Create and configure a rotating file logger for the application.

        The log rotates at 2 MB and keeps up to 3 backup files.  A handler
        for the same log file is never attached twice.
        """
        logger = logging.getLogger(APP_NAME)
        logger.setLevel(logging.DEBUG)

        for existing in logger.handlers:
            if getattr(existing, "baseFilename", None) == os.path.abspath(self.log_path):
                return logger

        handler = RotatingFileHandler(
            self.log_path,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
        )
        logger.addHandler(handler)

        return logger

    def _load(self) -> dict:
        """
        Read config.json from disk.

        Missing keys are back-filled from DEFAULT_CONFIG so that settings
        introduced in later versions are always present.  An unreadable file
        is logged and replaced by the defaults.
        """
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, "r", encoding="utf-8") as fh:
                    cfg: dict = json.load(fh)
                for key, value in DEFAULT_CONFIG.items():
                    cfg.setdefault(key, json.loads(json.dumps(value)))
                return cfg
        except (OSError, ValueError):
            self.logger.exception("Failed to load config; using defaults")

        return json.loads(json.dumps(DEFAULT_CONFIG))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration dictionary to disk as JSON."""
        try:
            with open(self.config_path, "w", encoding="utf-8") as fh:
                json.dump(self.data, fh, indent=2)
            self.logger.info("Config saved")
        except OSError:
            self.logger.exception("Failed to save config")

    def get(self, key: str, default=None):
        """Return a configuration value by key, or *default* if not found."""
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """
        Update a configuration value in memory.

        Call save() afterwards to persist the change to disk.
        """
        self.data[key] = value

    @property
    def kdf_iterations(self) -> int:
        return int(self.get("kdf_iterations", DEFAULT_ITERATIONS))

    @property
    def export_iterations(self) -> int:
        return int(self.get("export_iterations", DEFAULT_ITERATIONS))

    def open_store(self):
        """Build the DatabaseStore for vault_path using the configured write strategy."""
        from storage import AtomicWriteStrategy, DatabaseStore, DirectWriteStrategy

        if self.get("atomic_writes", True):
            strategy = AtomicWriteStrategy()
        else:
            strategy = DirectWriteStrategy()
        return DatabaseStore(self.vault_path, strategy)
