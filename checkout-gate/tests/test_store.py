"""Tests for the credential stores."""
from __future__ import annotations

import json
import logging

import pytest

from conftest import HOST, PASSWORD
from models import GateSettings, SettingsUpdate
from store import (
    InMemoryCredentialStore,
    JsonFileCredentialStore,
    SettingsStoreError,
    SettingsValidationError,
)


@pytest.fixture
def path(tmp_path):
    return tmp_path / "gate" / "settings.json"


@pytest.fixture
def file_store(path) -> JsonFileCredentialStore:
    return JsonFileCredentialStore(path)


# ---------------------------------------------------------------------------
# InMemoryCredentialStore
# ---------------------------------------------------------------------------

class TestInMemoryStore:

    def test_starts_empty(self):
        settings = InMemoryCredentialStore().get()
        assert settings.protected_hosts == []
        assert settings.has_password is False

    def test_replace_copies_value(self):
        store = InMemoryCredentialStore()
        settings = GateSettings(protected_hosts=[HOST])
        store.replace(settings)
        settings.protected_hosts.append("other.example.com")
        assert store.get().protected_hosts == [HOST]

    def test_get_returns_a_copy(self):
        store = InMemoryCredentialStore(GateSettings(protected_hosts=[HOST]))
        store.get().protected_hosts.append("other.example.com")
        assert store.get().protected_hosts == [HOST]

    def test_constructor_copies_value(self):
        settings = GateSettings(protected_hosts=[HOST])
        store = InMemoryCredentialStore(settings)
        settings.protected_hosts.clear()
        assert store.get().protected_hosts == [HOST]

    def test_invalid_replace_keeps_previous(self):
        store = InMemoryCredentialStore(GateSettings(protected_hosts=[HOST]))
        with pytest.raises(SettingsValidationError) as exc:
            store.replace(GateSettings(protected_hosts=[HOST, HOST]))
        assert not exc.value.report.passed
        assert store.get().protected_hosts == [HOST]

    def test_save_logs_without_secret(self, hasher, caplog):
        store = InMemoryCredentialStore()
        with caplog.at_level(logging.INFO, logger="store"):
            store.save(SettingsUpdate(protected_hosts=[HOST], password=PASSWORD),
                       hasher)
        assert "Checkout password changed" in caplog.text
        assert PASSWORD not in caplog.text
        assert store.get().password_hash not in caplog.text


# ---------------------------------------------------------------------------
# JsonFileCredentialStore
# ---------------------------------------------------------------------------

class TestJsonFileStore:

    def test_missing_file_reads_empty(self, file_store):
        assert file_store.get() == GateSettings()

    def test_save_then_get(self, file_store, path, hasher):
        saved = file_store.save(
            SettingsUpdate(protected_hosts=f"{HOST}\n*.dev.example.com",
                           password=PASSWORD),
            hasher,
        )
        assert path.exists()
        assert file_store.get() == saved
        assert hasher.verify(PASSWORD, file_store.get().password_hash)

    def test_file_is_json(self, file_store, path):
        file_store.replace(GateSettings(protected_hosts=[HOST]))
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"protected_hosts": [HOST], "password_hash": ""}

    def test_new_instance_sees_saved_settings(self, file_store, path):
        file_store.replace(GateSettings(protected_hosts=[HOST]))
        assert JsonFileCredentialStore(path).get().protected_hosts == [HOST]

    def test_write_leaves_no_temp_files(self, file_store, path):
        file_store.replace(GateSettings(protected_hosts=[HOST]))
        file_store.replace(GateSettings(protected_hosts=["b.example.com"]))
        assert [p.name for p in path.parent.iterdir()] == ["settings.json"]

    def test_keep_hash_across_saves(self, file_store, hasher):
        first = file_store.save(
            SettingsUpdate(protected_hosts=[HOST], password=PASSWORD), hasher
        )
        second = file_store.save(
            SettingsUpdate(protected_hosts=["b.example.com"], password=""),
            hasher,
        )
        assert second.password_hash == first.password_hash
        assert file_store.get().protected_hosts == ["b.example.com"]

    def test_reset(self, file_store):
        file_store.replace(GateSettings(protected_hosts=[HOST],
                                        password_hash="x"))
        file_store.reset()
        assert file_store.get() == GateSettings()

    @pytest.mark.parametrize("content", [
        "not json",
        "[1, 2, 3]",
        '{"protected_hosts": "not-a-list"}',
        "",
    ])
    def test_corrupt_file_reads_empty(self, file_store, path, caplog, content):
        path.parent.mkdir(parents=True)
        path.write_text(content, encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="store"):
            assert file_store.get() == GateSettings()
        assert "treating as unset" in caplog.text

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = JsonFileCredentialStore(blocker / "settings.json")
        with pytest.raises(SettingsStoreError):
            store.replace(GateSettings(protected_hosts=[HOST]))
