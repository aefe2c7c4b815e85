from __future__ import annotations

import json
from typing import Any, Dict, List
from urllib.parse import unquote

import pytest
import requests

from assetpro.backup import build_backup, restore_backup
from assetpro.ledger import Ledger
from assetpro.storage import (
    KEY_ASSETS,
    KEY_SEEDED,
    MODE_LOCAL,
    MODE_REMOTE,
    LocalStore,
    PersistenceAdapter,
    PersistenceError,
    RemoteStore,
)


class _FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._body = body
        self.content = b"" if body is None else json.dumps(body).encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.content)


class _FakeSession:
    """Records calls and answers from a queue of canned responses."""

    def __init__(self, responses: List[Any] | None = None) -> None:
        self.calls: List[tuple] = []
        self.responses = list(responses or [])

    def _next(self) -> _FakeResponse:
        item = self.responses.pop(0) if self.responses else _FakeResponse(200, {"ok": True})
        if isinstance(item, Exception):
            raise item
        return item

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        return self._next()

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None))
        return self._next()


class _FakeRestStore:
    """Keeps remote collections in memory and answers the store REST routes."""

    base_url = "http://store.example/api"

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {"assets": {}, "technicians": {}, "spks": {}}

    def request(self, method, url, json=None, timeout=None):
        parts = url[len(self.base_url):].strip("/").split("/")
        table = self.rows[parts[0]]
        if method == "GET":
            return _FakeResponse(200, list(table.values()))
        if method == "POST":
            table[json["id"]] = json
            return _FakeResponse(201, {"ok": True})
        entity_id = unquote(parts[1])
        if method == "PUT" and entity_id in table:
            table[entity_id] = json
            return _FakeResponse(200, {"ok": True})
        if method == "DELETE" and parts[0] != "spks":
            table.pop(entity_id, None)
            return _FakeResponse(200, {"ok": True})
        return _FakeResponse(405 if method == "DELETE" else 404, {"detail": "rejected"})

    def get(self, url, timeout=None):
        return _FakeResponse(200, {"ok": True})


def test_local_store_persists_across_instances(tmp_path) -> None:
    db = tmp_path / "kv.db"
    first = LocalStore(db)
    first.create_asset({"id": "AST-001", "name": "Pump", "status": "Broken"})
    first.create_asset({"id": "AST-002", "name": "Valve"})

    second = LocalStore(db)
    rows = second.fetch_assets()
    assert [r["id"] for r in rows] == ["AST-002", "AST-001"]
    assert rows[1]["status"] == "Broken"

    raw = json.loads(second.get_item(KEY_ASSETS))
    assert raw[1]["lastMaintenance"] == "Never"


def test_local_store_malformed_json_raises(local_store) -> None:
    local_store.set_item(KEY_ASSETS, "{not json")
    with pytest.raises(PersistenceError):
        local_store.fetch_assets()


def test_upsert_reports_created(local_store) -> None:
    assert local_store.upsert("technicians", {"id": "TECH-01", "name": "Budi"}) is True
    assert local_store.upsert("technicians", {"id": "TECH-01", "name": "Budi S."}) is False
    assert local_store.get("technicians", "TECH-01")["name"] == "Budi S."


def test_seed_runs_once(adapter) -> None:
    led = Ledger(adapter, seed_demo=True)
    led.load()
    assert {a["id"] for a in led.list_assets()} == {"AST-001", "AST-002", "AST-003"}
    assert led.get_technician("TECH-03")["active_tasks"] == 1
    assert adapter.get_setting(KEY_SEEDED) is True

    led.delete_asset("AST-001")
    again = Ledger(adapter, seed_demo=True)
    again.load()
    assert again.get_asset("AST-001") is None


def test_mode_switch_is_persisted(local_store) -> None:
    adapter = PersistenceAdapter(local_store)
    assert adapter.get_mode() == MODE_LOCAL
    adapter.set_endpoint("http://store.example:3000/api/")
    adapter.set_mode(MODE_REMOTE)

    reopened = PersistenceAdapter(local_store)
    assert reopened.get_mode() == MODE_REMOTE
    assert reopened.get_endpoint() == "http://store.example:3000/api"

    with pytest.raises(ValueError):
        reopened.set_mode("cloud")
    with pytest.raises(ValueError):
        reopened.set_endpoint("ftp://store.example")


def test_remote_store_routes_requests() -> None:
    session = _FakeSession(
        [
            _FakeResponse(200, [{"id": "SPK-1", "assetId": "AST-001", "technicianId": "TECH-01", "title": "x"}]),
            _FakeResponse(200, {"ok": True}),
            _FakeResponse(200, {"ok": True}),
        ]
    )
    remote = RemoteStore("http://store.example/api/", session=session)
    rows = remote.fetch_work_orders()
    assert rows[0]["asset_id"] == "AST-001"

    remote.update_work_order(rows[0])
    remote.delete_technician("TECH 01")
    assert session.calls[1][0] == "PUT"
    assert session.calls[1][1] == "http://store.example/api/spks/SPK-1"
    assert session.calls[1][2]["technicianId"] == "TECH-01"
    assert session.calls[2][:2] == ("DELETE", "http://store.example/api/technicians/TECH%2001")


def test_remote_failures_become_persistence_errors() -> None:
    session = _FakeSession([requests.ConnectionError("refused"), _FakeResponse(500, {"error": "boom"})])
    remote = RemoteStore("http://store.example/api", session=session)
    with pytest.raises(PersistenceError):
        remote.fetch_assets()
    with pytest.raises(PersistenceError, match="HTTP 500"):
        remote.create_asset({"id": "AST-001", "name": "Pump"})


def test_remote_check_connection() -> None:
    assert RemoteStore("http://a/api", session=_FakeSession([_FakeResponse(200, {"ok": True})])).check_connection()
    assert not RemoteStore("http://a/api", session=_FakeSession([_FakeResponse(503, None)])).check_connection()
    assert not RemoteStore("http://a/api", session=_FakeSession([requests.Timeout("slow")])).check_connection()


def test_ledger_reports_remote_write_failures(local_store) -> None:
    session = _FakeSession([_FakeResponse(200, []), _FakeResponse(200, []), _FakeResponse(200, [])])
    adapter = PersistenceAdapter(local_store, default_mode=MODE_REMOTE, session=session)
    led = Ledger(adapter, seed_demo=True)
    assert led.load()["ok"] is True
    assert led.list_assets() == []

    session.responses = [requests.ConnectionError("down")]
    out = led.register_asset({"id": "AST-001", "name": "Pump"})
    assert out.applied is True
    assert out.ok is False
    assert out.persist_errors and "create asset AST-001" in out.persist_errors[0]
    assert led.get_asset("AST-001") is not None


def test_ledger_load_failure_keeps_state(local_store) -> None:
    session = _FakeSession([requests.ConnectionError("down")])
    adapter = PersistenceAdapter(local_store, default_mode=MODE_REMOTE, session=session)
    led = Ledger(adapter, seed_demo=False)
    out = led.load()
    assert out["ok"] is False
    assert led.connected is False
    assert led.status()["last_error"]


def test_migrate_posts_snapshot_to_remote(stocked_ledger) -> None:
    session = _FakeSession()
    stocked_ledger.store._session = session
    stocked_ledger.store.set_endpoint("http://store.example/api")
    out = stocked_ledger.migrate_to_remote()
    assert out.ok
    assert out.item == {"assets": 1, "technicians": 2, "spks": 0}
    assert [c[1] for c in session.calls] == [
        "http://store.example/api/assets",
        "http://store.example/api/technicians",
        "http://store.example/api/technicians",
    ]
    assert stocked_ledger.store.get_mode() == MODE_LOCAL


def test_migrate_reports_unreachable_remote(stocked_ledger) -> None:
    stocked_ledger.store._session = _FakeSession([requests.ConnectionError("down")])
    stocked_ledger.store.set_endpoint("http://store.example/api")
    out = stocked_ledger.migrate_to_remote()
    assert out.applied is False
    assert out.reason == "remote_unreachable"


def _remote_ledger(local_store, remote: _FakeRestStore) -> Ledger:
    adapter = PersistenceAdapter(
        local_store,
        default_mode=MODE_REMOTE,
        default_endpoint=remote.base_url,
        session=remote,
    )
    led = Ledger(adapter, seed_demo=False)
    led.load()
    return led


def test_remote_restore_replaces_remote_collections(local_store) -> None:
    remote = _FakeRestStore()
    led = _remote_ledger(local_store, remote)
    led.register_asset({"id": "AST-001", "name": "Pump"})
    led.register_technician({"id": "TECH-01", "name": "Budi"})
    doc = build_backup(led)

    led.register_asset({"id": "AST-002", "name": "Valve"})
    led.register_technician({"id": "TECH-02", "name": "Siti"})
    out = restore_backup(led, doc)
    assert out.ok
    assert set(remote.rows["assets"]) == {"AST-001"}
    assert set(remote.rows["technicians"]) == {"TECH-01"}

    reloaded = _remote_ledger(local_store, remote)
    assert [a["id"] for a in reloaded.list_assets()] == ["AST-001"]
    assert [t["id"] for t in reloaded.list_technicians()] == ["TECH-01"]


def test_remote_restore_reports_leftover_work_orders(local_store) -> None:
    remote = _FakeRestStore()
    led = _remote_ledger(local_store, remote)
    led.register_asset({"id": "AST-001", "name": "Pump"})
    led.register_technician({"id": "TECH-01", "name": "Budi"})
    doc = build_backup(led)

    led.create_work_order({"id": "SPK-1", "asset_id": "AST-001", "technician_id": "TECH-01", "title": "Leak"})
    out = restore_backup(led, doc)
    assert out.ok is False
    assert any("SPK-1" in e for e in out.persist_errors)
    assert led.list_work_orders() == []
