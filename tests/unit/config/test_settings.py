"""Settings tests: defaults and environment overrides."""

import pytest
from pydantic import ValidationError

from agrotrace.config.settings import AppSettings


def test_defaults(monkeypatch):
    monkeypatch.delenv("AUDIT_CHAIN_MODE", raising=False)
    settings = AppSettings(_env_file=None)
    assert settings.database_url.startswith("sqlite+aiosqlite://")
    assert settings.audit_chain_scope == "tenant"
    assert settings.audit_chain_mode == "all"
    assert settings.audit_hash_algorithm == "sha256"
    assert settings.audit_overflow_policy == "drop_oldest"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AUDIT_CHAIN_MODE", "critical")
    monkeypatch.setenv("audit_queue_max_size", "50")
    settings = AppSettings(_env_file=None)
    assert settings.audit_chain_mode == "critical"
    assert settings.audit_queue_max_size == 50


def test_invalid_values_rejected(monkeypatch):
    monkeypatch.setenv("AUDIT_OVERFLOW_POLICY", "discard_everything")
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None)
