from __future__ import annotations

import importlib
import sys

import pytest

from assetpro.ledger import Ledger
from assetpro.storage import LocalStore, PersistenceAdapter


@pytest.fixture()
def local_store(tmp_path):
    return LocalStore(tmp_path / "assetpro_test.db")


@pytest.fixture()
def adapter(local_store):
    return PersistenceAdapter(local_store)


@pytest.fixture()
def ledger(adapter):
    led = Ledger(adapter, seed_demo=False)
    led.load()
    return led


@pytest.fixture()
def stocked_ledger(ledger):
    ledger.register_asset({"id": "AST-001", "name": "Ceiling Fan", "category": "Facilities", "location": "Lobby"})
    ledger.register_technician({"id": "TECH-01", "name": "Budi", "specialty": "Electrical"})
    ledger.register_technician({"id": "TECH-02", "name": "Siti", "specialty": "HVAC"})
    return ledger


@pytest.fixture()
def assetpro_main(tmp_path, monkeypatch):
    monkeypatch.setenv("ASSETPRO_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("ASSETPRO_DB_PATH", raising=False)
    monkeypatch.delenv("ASSETPRO_STORAGE_MODE", raising=False)
    monkeypatch.setenv("ASSETPRO_HEALTH_MONITOR_ENABLED", "0")
    monkeypatch.setenv("ASSETPRO_ADMIN_PASSWORD", "pytest-admin-pass")
    monkeypatch.setenv("ASSETPRO_SEED_DEMO", "1")

    sys.modules.pop("assetpro.main", None)
    return importlib.import_module("assetpro.main")
