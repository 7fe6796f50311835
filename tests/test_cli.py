"""End-to-end tests of the command-line front-end."""

import json

import pytest

from cli import build_parser, main


def prompter(*answers):
    """Stand-in for getpass that returns *answers* in order."""
    it = iter(answers)
    return lambda _text: next(it)


@pytest.fixture
def run(fast_config, capsys):
    def _run(argv, *answers):
        code = main(["--data-dir", str(fast_config)] + list(argv), prompt=prompter(*answers))
        out, err = capsys.readouterr()
        return code, out, err

    return _run


@pytest.fixture
def initialised(run):
    code, _, _ = run(["init"], "master", "master")
    assert code == 0
    return run


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_lock_filters_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "--locked", "--unlocked"])

    def test_import_strategies_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import", "-f", "x", "--merge", "--diff"])


class TestInit:
    def test_creates_vault(self, run, fast_config):
        code, out, _ = run(["init"], "master", "master")
        assert code == 0
        assert "Vault created" in out
        assert (fast_config / "vault.json").is_file()

    def test_mismatched_confirmation(self, run, fast_config):
        code, _, err = run(["init"], "master", "other")
        assert code == 1
        assert "Error:" in err
        assert not (fast_config / "vault.json").exists()

    def test_existing_vault_verifies_password(self, initialised):
        code, out, _ = initialised(["init"], "master")
        assert code == 0
        assert "verified" in out

        code, _, err = initialised(["init"], "wrong")
        assert code == 1
        assert "Invalid master password" in err


class TestEntryCommands:
    def test_create_get_update_delete(self, initialised):
        assert initialised(["create", "-k", "github", "-v", "token1"], "master")[0] == 0

        code, out, _ = initialised(["get", "-k", "github"], "master")
        assert code == 0
        assert "Value: token1" in out

        assert initialised(["update", "-k", "github", "-v", "token2"], "master")[0] == 0
        assert "Value: token2" in initialised(["get", "-k", "github"], "master")[1]

        assert initialised(["delete", "-k", "github"], "master")[0] == 0
        code, _, err = initialised(["get", "-k", "github"], "master")
        assert code == 1
        assert "Entry 'github' not found" in err

    def test_wrong_master_password(self, initialised):
        code, _, err = initialised(["create", "-k", "a", "-v", "b"], "wrong")
        assert code == 1
        assert "Invalid master password" in err

    def test_empty_password_prompt(self, initialised):
        code, _, err = initialised(["get", "-k", "a"], "")
        assert code == 1
        assert "Error:" in err

    def test_lock_toggle(self, initialised):
        initialised(["create", "-k", "secret", "-v", "v"], "master")

        code, out, _ = initialised(["lock", "-k", "secret"], "master")
        assert code == 0
        assert "locked successfully" in out

        code, _, err = initialised(["get", "-k", "secret"], "master")
        assert code == 1
        assert "locked" in err

        code, out, _ = initialised(["lock", "-k", "secret"], "master")
        assert "unlocked successfully" in out

    def test_missing_vault(self, run):
        code, _, err = run(["get", "-k", "x"], "master")
        assert code == 1
        assert "Vault not found" in err


class TestList:
    def test_empty(self, initialised):
        code, out, _ = initialised(["list"], "master")
        assert code == 0
        assert "No entries found." in out

    def test_filters(self, initialised):
        initialised(["create", "-k", "github", "-v", "1"], "master")
        initialised(["create", "-k", "aws", "-v", "2"], "master")
        initialised(["lock", "-k", "aws"], "master")

        out = initialised(["list"], "master")[1]
        assert "  - aws [LOCKED]" in out
        assert "  - github" in out

        out = initialised(["list", "--locked"], "master")[1]
        assert "aws" in out
        assert "github" not in out

        out = initialised(["list", "-s", "zzz"], "master")[1]
        assert "No matching entries found." in out

    def test_xlsx_output(self, initialised, tmp_path):
        initialised(["create", "-k", "github", "-v", "1"], "master")
        path = tmp_path / "inventory.xlsx"
        code, out, _ = initialised(["list", "--xlsx", str(path)], "master")
        assert code == 0
        assert path.is_file()
        assert "Inventory written" in out


class TestExportImport:
    def test_export_then_import_diff_and_replace(self, initialised, tmp_path):
        initialised(["create", "-k", "github", "-v", "new"], "master")
        bundle = tmp_path / "backup.sbx"

        code, out, _ = initialised(["export", "-o", str(bundle)], "master", "exp", "exp")
        assert code == 0
        assert "Exported 1 entries" in out
        assert json.loads(bundle.read_text())["entry_count"] == 1

        code, _, err = initialised(["export", "-o", str(bundle)], "master", "exp", "exp")
        assert code == 1
        assert "already exists" in err

        assert initialised(["export", "-o", str(bundle), "--force"], "master", "exp", "exp")[0] == 0

        initialised(["update", "-k", "github", "-v", "old"], "master")

        code, out, _ = initialised(["import", "-f", str(bundle), "--diff"], "master", "exp")
        assert code == 0
        assert "Would import" in out
        assert "updated: 1" in out
        assert "Value: old" in initialised(["get", "-k", "github"], "master")[1]

        code, out, _ = initialised(["import", "-f", str(bundle)], "master", "exp")
        assert "skipped: 1" in out

        code, out, _ = initialised(["import", "-f", str(bundle), "--replace"], "master", "exp")
        assert code == 0
        assert "Imported" in out
        assert "Value: new" in initialised(["get", "-k", "github"], "master")[1]

    def test_export_password_mismatch(self, initialised, tmp_path):
        bundle = tmp_path / "backup.sbx"
        code, _, err = initialised(["export", "-o", str(bundle)], "master", "exp", "typo")
        assert code == 1
        assert not bundle.exists()

    def test_import_wrong_password(self, initialised, tmp_path):
        bundle = tmp_path / "backup.sbx"
        initialised(["export", "-o", str(bundle)], "master", "exp", "exp")
        code, _, err = initialised(["import", "-f", str(bundle)], "master", "nope")
        assert code == 1
        assert "Wrong password or corrupted data" in err
