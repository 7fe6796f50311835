"""
cli.py – Command-line front-end for Strongbox.

A thin layer over Vault: it parses arguments, asks for passwords with
getpass, calls exactly one vault operation and prints the result.  Every
VaultError is reported as ``Error: <message>`` with exit status 1.
"""

import argparse
import getpass
import sys
from typing import Callable, List, Optional

from config import APP_NAME, APP_VERSION, AppConfig
from errors import EmptyPassword, InvalidMasterPassword, VaultError
from exporter import OverwritePolicy
from importer import ImportStrategy
from vault import Vault

Prompt = Callable[[str], str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strongbox",
        description=f"{APP_NAME} - a local secret vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s init                               # Create (or verify) the vault
  %(prog)s create -k github -v ghp_token      # Store a secret
  %(prog)s get -k github                      # Print a secret
  %(prog)s list -s git --unlocked             # Filter entries
  %(prog)s export -o backup.sbx               # Encrypted backup
  %(prog)s import -f backup.sbx --diff        # Preview an import
        """,
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument(
        "--data-dir",
        help="Directory holding the vault (default: OS user-data directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Create the vault, or verify the master password")

    create = subparsers.add_parser("create", help="Create a new entry")
    create.add_argument("--key", "-k", required=True, help="Entry name")
    create.add_argument("--value", "-v", required=True, help="Secret value")

    get = subparsers.add_parser("get", help="Print an entry's value")
    get.add_argument("--key", "-k", required=True, help="Entry name")

    update = subparsers.add_parser("update", help="Replace an entry's value")
    update.add_argument("--key", "-k", required=True, help="Entry name")
    update.add_argument("--value", "-v", required=True, help="New secret value")

    delete = subparsers.add_parser("delete", help="Delete an entry")
    delete.add_argument("--key", "-k", required=True, help="Entry name")

    lock = subparsers.add_parser("lock", help="Toggle an entry's lock")
    lock.add_argument("--key", "-k", required=True, help="Entry name")

    list_parser = subparsers.add_parser("list", help="List entries")
    list_parser.add_argument("--search", "-s", help="Case-insensitive name filter")
    lock_group = list_parser.add_mutually_exclusive_group()
    lock_group.add_argument("--locked", action="store_true", help="Only locked entries")
    lock_group.add_argument("--unlocked", action="store_true", help="Only unlocked entries")
    list_parser.add_argument("--xlsx", help="Also write the listing to an Excel file")

    export = subparsers.add_parser("export", help="Write an encrypted export bundle")
    export.add_argument("--output", "-o", required=True, help="Bundle file to write")
    export.add_argument("--force", action="store_true", help="Overwrite an existing file")

    import_parser = subparsers.add_parser("import", help="Import an export bundle")
    import_parser.add_argument("--file", "-f", required=True, help="Bundle file to read")
    strategy = import_parser.add_mutually_exclusive_group()
    strategy.add_argument("--merge", action="store_true", help="Keep existing entries (default)")
    strategy.add_argument("--replace", action="store_true", help="Overwrite existing entries")
    strategy.add_argument("--diff", action="store_true", help="Only report what would change")

    return parser


def _ask(prompt: Prompt, text: str) -> str:
    value = prompt(text)
    if not value:
        raise EmptyPassword()
    return value


def _unlock(args, prompt: Prompt, text: str = "Enter master password: ") -> Vault:
    vault = Vault.from_config(AppConfig(args.data_dir))
    return vault.unlock(_ask(prompt, text))


def cmd_init(args, prompt: Prompt) -> None:
    vault = Vault.from_config(AppConfig(args.data_dir))
    if vault.store.exists():
        print("Vault already exists. Please verify your password:")
        if not vault.verify_master_password(_ask(prompt, "Enter master password: ")):
            raise InvalidMasterPassword()
        print("Master password verified successfully!")
        return

    print("No vault found. Creating a new one...")
    password = _ask(prompt, "Enter new master password: ")
    if prompt("Confirm master password: ") != password:
        raise VaultError("Passwords did not match")
    vault.init(password).close()
    print(f"Vault created at {vault.store.path()}")


def cmd_create(args, prompt: Prompt) -> None:
    with _unlock(args, prompt) as vault:
        vault.create_entry(args.key, args.value)
    print(f"Entry '{args.key}' created successfully!")


def cmd_get(args, prompt: Prompt) -> None:
    with _unlock(args, prompt) as vault:
        print(f"Value: {vault.get_entry(args.key)}")


def cmd_update(args, prompt: Prompt) -> None:
    with _unlock(args, prompt) as vault:
        vault.update_entry(args.key, args.value)
    print(f"Entry '{args.key}' updated successfully!")


def cmd_delete(args, prompt: Prompt) -> None:
    with _unlock(args, prompt, "Enter master password to confirm deletion: ") as vault:
        vault.delete_entry(args.key)
    print(f"Entry '{args.key}' deleted successfully!")


def cmd_lock(args, prompt: Prompt) -> None:
    with _unlock(args, prompt, "Enter master password to toggle lock: ") as vault:
        locked = vault.toggle_lock(args.key)
    print(f"Entry '{args.key}' {'locked' if locked else 'unlocked'} successfully!")


def cmd_list(args, prompt: Prompt) -> None:
    lock_filter = True if args.locked else False if args.unlocked else None
    config = AppConfig(args.data_dir)
    with Vault.from_config(config).unlock(_ask(prompt, "Enter master password: ")) as vault:
        entries = vault.list_entries(args.search, lock_filter)
        if args.xlsx:
            vault.write_inventory(
                args.xlsx,
                args.search,
                lock_filter,
                column_widths=config.get("excel_column_widths"),
            )

    if not entries:
        filtered = args.search or lock_filter is not None
        print("No matching entries found." if filtered else "No entries found.")
        return

    header = f"Entries matching '{args.search}'" if args.search else "Stored entries"
    if lock_filter is True:
        header += " (locked only)"
    elif lock_filter is False:
        header += " (unlocked only)"
    print(header + ":")
    for name, locked in entries:
        print(f"  - {name}{' [LOCKED]' if locked else ''}")
    if args.xlsx:
        print(f"Inventory written to {args.xlsx}")


def cmd_export(args, prompt: Prompt) -> None:
    with _unlock(args, prompt) as vault:
        export_password = _ask(prompt, "Enter export password: ")
        if prompt("Confirm export password: ") != export_password:
            raise VaultError("Passwords did not match")
        policy = OverwritePolicy.OVERWRITE if args.force else OverwritePolicy.REFUSE
        vault.export_to_file(args.output, export_password, policy)
        count = len(vault.list_entries())
    print(f"Exported {count} entries to {args.output}")


def cmd_import(args, prompt: Prompt) -> None:
    if args.replace:
        strategy = ImportStrategy.REPLACE
    elif args.diff:
        strategy = ImportStrategy.DIFF
    else:
        strategy = ImportStrategy.MERGE

    with _unlock(args, prompt) as vault:
        outcome = vault.import_from_file(
            args.file, _ask(prompt, "Enter export file password: "), strategy
        )

    verb = "Would import" if strategy is ImportStrategy.DIFF else "Imported"
    print(f"{verb} from {args.file} ({outcome.total_in_bundle} entries in file):")
    for label, names in (
        ("added", outcome.added),
        ("updated", outcome.updated),
        ("skipped", outcome.skipped),
    ):
        print(f"  {label}: {len(names)}")
        for name in names:
            print(f"    - {name}")


COMMANDS = {
    "init": cmd_init,
    "create": cmd_create,
    "get": cmd_get,
    "update": cmd_update,
    "delete": cmd_delete,
    "lock": cmd_lock,
    "list": cmd_list,
    "export": cmd_export,
    "import": cmd_import,
}


def main(argv: Optional[List[str]] = None, prompt: Prompt = getpass.getpass) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        COMMANDS[args.command](args, prompt)
    except VaultError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0
