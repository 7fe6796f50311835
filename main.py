"""
main.py – Application entry point.

This file is intentionally minimal.  All logic lives in specialised modules:

  config.py    – AppConfig       : constants, file paths, config I/O, logging
  crypto.py    – KeyDerivation,  : PBKDF2 key derivation, AES-256-GCM,
                 AeadCipher,       zeroed session key buffer
                 SessionKey
  storage.py   – Database,       : snapshot model, JSON persistence,
                 DatabaseStore     direct / atomic write strategies
  vault.py     – Vault           : unlock, entry CRUD, lock toggling
  exporter.py  – ExportCodec     : encrypted export bundles
  importer.py  – ImportReconciler: merge / replace / diff imports
  report.py    – write_inventory : Excel listing of entry names
  cli.py       – main            : argparse front-end

To run the application:
    python main.py --help
"""

import sys

from cli import main


if __name__ == "__main__":
    sys.exit(main())
