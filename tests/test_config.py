import json

import pytest

from canaryledger import (
    ConfigurationError,
    Ed25519OracleVerifier,
    Ed25519SignatureVerifier,
    InMemoryBackend,
    PlaceholderOracleVerifier,
    SqliteBackend,
)
from canaryledger import config, system as system_module
from canaryledger.hashing import b64e
from canaryledger.verifiers import generate_key_pair


def test_defaults_are_valid():
    assert config.validate_config() == []


def test_prod_refuses_placeholders_and_memory(monkeypatch):
    monkeypatch.setattr(config, "ENV", "prod")

    problems = config.validate_config()

    assert any("placeholder" in p for p in problems)
    assert any("memory backend" in p for p in problems)
    with pytest.raises(ConfigurationError):
        config.require_valid_config()


def test_unknown_settings_reported(monkeypatch):
    monkeypatch.setattr(config, "VERIFIER_TYPE", "rot13")
    monkeypatch.setattr(config, "LEDGER_BACKEND", "postgres")
    monkeypatch.setattr(config, "CANARY_INTERVAL_SECONDS", 0)

    problems = config.validate_config()

    assert len(problems) == 3


def test_ed25519_requires_key_files(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "VERIFIER_TYPE", "ed25519")
    monkeypatch.setattr(config, "ORACLE_PUBLIC_KEYS_PATH", str(tmp_path / "missing.json"))
    monkeypatch.setattr(config, "SIGNER_KEYS_PATH", str(tmp_path / "missing.json"))

    assert len(config.validate_config()) == 2


def test_load_key_map_flat_and_nested(tmp_path):
    _, pk = generate_key_pair()
    flat = tmp_path / "flat.json"
    nested = tmp_path / "nested.json"
    flat.write_text(json.dumps({"bob": b64e(pk)}))
    nested.write_text(json.dumps({"keys": {"oracle-1": b64e(pk)}}))

    assert config.load_key_map(str(flat)) == {"bob": b64e(pk)}
    assert config.load_key_map(str(nested)) == {"oracle-1": b64e(pk)}


def test_load_key_map_rejects_non_object(tmp_path):
    path = tmp_path / "keys.json"
    path.write_text(json.dumps({"keys": ["not", "a", "map"]}))

    with pytest.raises(ConfigurationError):
        config.load_key_map(str(path))


def test_build_system_from_defaults():
    system = system_module.build_system()

    assert isinstance(system.state.backend, InMemoryBackend)
    assert isinstance(system.canary._verifier, PlaceholderOracleVerifier)
    assert system.state.message_count() == 0


def test_build_system_sqlite_ed25519(monkeypatch, tmp_path):
    _, pk = generate_key_pair()
    keys = tmp_path / "keys.json"
    keys.write_text(json.dumps({"keys": {"k1": b64e(pk)}}))
    monkeypatch.setattr(config, "VERIFIER_TYPE", "ed25519")
    monkeypatch.setattr(config, "ORACLE_PUBLIC_KEYS_PATH", str(keys))
    monkeypatch.setattr(config, "SIGNER_KEYS_PATH", str(keys))
    monkeypatch.setattr(config, "LEDGER_BACKEND", "sqlite")
    monkeypatch.setattr(config, "LEDGER_DB_PATH", str(tmp_path / "data" / "ledger.db"))

    system = system_module.build_system()

    assert isinstance(system.state.backend, SqliteBackend)
    assert isinstance(system.canary._verifier, Ed25519OracleVerifier)
    assert isinstance(system.ledger._verifier, Ed25519SignatureVerifier)
    system.close()


def test_unknown_verifier_type(monkeypatch):
    monkeypatch.setattr(config, "VERIFIER_TYPE", "rot13")
    with pytest.raises(ConfigurationError):
        system_module.get_verifiers()
