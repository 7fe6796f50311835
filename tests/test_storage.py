"""Tests for storage module."""

import base64
import json

import pytest

from errors import DatabaseNotFound, StorageError
from storage import (
    AtomicWriteStrategy,
    Database,
    DatabaseStore,
    DirectWriteStrategy,
    Entry,
    MasterCredentialRecord,
)


def make_database(**entries):
    credential = MasterCredentialRecord(salt=b"s" * 32, verifier=b"v" * 32, iterations=100_000)
    return Database(credential=credential, entries=dict(entries))


class TestDatabase:
    def test_new_database_is_empty(self):
        db = make_database()
        assert len(db) == 0
        assert db.credential.iterations == 100_000

    def test_with_entry_returns_copy(self):
        db = make_database()
        entry = Entry(ciphertext=b"\x0a\x0b", nonce=b"n" * 12)
        updated = db.with_entry("test_key", entry)
        assert "test_key" in updated
        assert "test_key" not in db

    def test_without_entry_returns_copy(self):
        db = make_database(a=Entry(b"c", b"n" * 12))
        trimmed = db.without_entry("a")
        assert "a" not in trimmed
        assert "a" in db

    def test_names_are_case_sensitive(self):
        db = make_database(GitHub=Entry(b"c", b"n" * 12))
        assert "GitHub" in db
        assert "github" not in db

    def test_serialized_form_uses_base64(self):
        nonce = bytes([255, 128, 64, 32, 16, 8, 4, 2, 1, 0, 1, 2])
        db = make_database(key_0=Entry(ciphertext=b"\x0b\x16\x21", nonce=nonce, locked=True))
        data = json.loads(db.to_json())

        assert set(data) == {"credential", "entries"}
        assert base64.b64decode(data["credential"]["salt"]) == b"s" * 32
        assert base64.b64decode(data["credential"]["verifier"]) == b"v" * 32
        assert data["credential"]["iterations"] == 100_000

        raw_entry = data["entries"]["key_0"]
        assert base64.b64decode(raw_entry["nonce"]) == nonce
        assert base64.b64decode(raw_entry["ciphertext"]) == b"\x0b\x16\x21"
        assert raw_entry["locked"] is True

    def test_json_roundtrip(self):
        db = make_database(
            a=Entry(b"one", b"1" * 12, False),
            b=Entry(b"two", b"2" * 12, True),
        )
        assert Database.from_json(db.to_json()) == db

    def test_invalid_json_rejected(self):
        with pytest.raises(StorageError):
            Database.from_json(b"{not json")

    def test_missing_credential_rejected(self):
        with pytest.raises(StorageError):
            Database.from_json(b'{"entries": {}}')

    def test_bad_base64_rejected(self):
        data = json.loads(make_database().to_json())
        data["credential"]["salt"] = "***"
        with pytest.raises(StorageError):
            Database.from_dict(data)


class TestDatabaseStore:
    def test_missing_file(self, tmp_path):
        store = DatabaseStore(tmp_path / "vault.json")
        assert not store.exists()
        with pytest.raises(DatabaseNotFound):
            store.load()

    def test_save_and_load(self, tmp_path):
        store = DatabaseStore(tmp_path / "vault.json")
        db = make_database(x=Entry(b"ct", b"n" * 12))
        store.save(db)
        assert store.exists()
        assert store.load() == db

    def test_path(self, tmp_path):
        store = DatabaseStore(tmp_path / "vault.json")
        assert store.path() == str(tmp_path / "vault.json")

    def test_creates_parent_directories(self, tmp_path):
        store = DatabaseStore(tmp_path / "a" / "b" / "vault.json")
        store.save(make_database())
        assert store.exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "vault.json"
        path.write_bytes(b"\x00garbage")
        with pytest.raises(StorageError):
            DatabaseStore(path).load()

    def test_atomic_strategy_leaves_no_temp_file(self, tmp_path):
        store = DatabaseStore(tmp_path / "vault.json", AtomicWriteStrategy())
        store.save(make_database())
        store.save(make_database(y=Entry(b"ct", b"n" * 12)))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["vault.json"]
        assert "y" in store.load()

    def test_direct_strategy(self, tmp_path):
        store = DatabaseStore(tmp_path / "vault.json", DirectWriteStrategy())
        store.save(make_database(z=Entry(b"ct", b"n" * 12)))
        assert "z" in store.load()

    def test_write_failure_becomes_storage_error(self, tmp_path):
        class FailingStrategy:
            def write(self, path, data):
                raise OSError("disk full")

        store = DatabaseStore(tmp_path / "vault.json", FailingStrategy())
        with pytest.raises(StorageError):
            store.save(make_database())
