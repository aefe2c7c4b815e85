from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from .config import DEFAULT_SQL_ENDPOINT
from .models import Asset, Technician, WireModel, WorkOrder, dump_entity, parse_entity

logger = logging.getLogger("assetpro.storage")

MODE_LOCAL = "local"
MODE_REMOTE = "sql_remote"
STORAGE_MODES = (MODE_LOCAL, MODE_REMOTE)

KEY_ASSETS = "ap_assets"
KEY_SPKS = "ap_spks"
KEY_TECHNICIANS = "ap_technicians"
KEY_CATEGORIES = "ap_categories"
KEY_LOCATIONS = "ap_locations"
KEY_SEEDED = "ap_seeded"
KEY_MODE = "ap_storage_mode"
KEY_ENDPOINT = "ap_sql_endpoint"

HEALTH_TIMEOUT_SEC = 3.0

# snapshot key -> (local storage key, remote path, wire model)
COLLECTIONS: Dict[str, tuple[str, str, type[WireModel]]] = {
    "assets": (KEY_ASSETS, "/assets", Asset),
    "technicians": (KEY_TECHNICIANS, "/technicians", Technician),
    "spks": (KEY_SPKS, "/spks", WorkOrder),
}


class PersistenceError(RuntimeError):
    """A store read or write failed. The in-memory ledger may be ahead of the store."""


def _parse_rows(model: type[WireModel], docs: Any, source: str) -> List[Dict[str, Any]]:
    if not isinstance(docs, list):
        raise PersistenceError(f"{source}: expected a list, got {type(docs).__name__}")
    try:
        return [parse_entity(model, d) for d in docs]
    except ValidationError as exc:
        raise PersistenceError(f"{source}: invalid record ({exc.error_count()} errors)") from exc


# ---------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------


class LocalStore:
    """
    Embedded key/value store laid out like browser local storage:
    one JSON document per key, entity collections newest first.
    """

    def __init__(self, db_path: Path, *, timeout_sec: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_sec = timeout_sec
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL,
              updated_at TEXT NOT NULL
            )
            """,
            (),
            commit=True,
        )

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(str(self.db_path), timeout=self.timeout_sec)
        con.row_factory = sqlite3.Row
        return con

    def _execute(self, sql: str, params: tuple, *, commit: bool = False) -> Optional[sqlite3.Row]:
        try:
            con = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(f"local store {self.db_path} unavailable: {exc}") from exc
        try:
            row = con.execute(sql, params).fetchone()
            if commit:
                con.commit()
            return row
        except sqlite3.Error as exc:
            raise PersistenceError(f"local store {self.db_path}: {exc}") from exc
        finally:
            con.close()

    def get_item(self, key: str) -> Optional[str]:
        row = self._execute("SELECT value FROM kv_store WHERE key=?", (key,))
        return str(row["value"]) if row else None

    def set_item(self, key: str, value: str) -> None:
        stamp = datetime.now().replace(microsecond=0).isoformat(sep=" ")
        self._execute(
            """
            INSERT INTO kv_store(key, value, updated_at) VALUES(?,?,?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """,
            (key, str(value), stamp),
            commit=True,
        )

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(f"local key {key} holds malformed JSON") from exc

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))

    # --- entity collections ---

    def fetch(self, name: str) -> List[Dict[str, Any]]:
        key, _path, model = COLLECTIONS[name]
        return _parse_rows(model, self.get_json(key, []), f"local {key}")

    def _write(self, name: str, rows: List[Dict[str, Any]]) -> None:
        key, _path, model = COLLECTIONS[name]
        self.set_json(key, [dump_entity(model, r) for r in rows])

    def _prepend(self, name: str, row: Dict[str, Any]) -> None:
        self._write(name, [row] + self.fetch(name))

    def _replace(self, name: str, row: Dict[str, Any]) -> None:
        self._write(name, [row if r["id"] == row["id"] else r for r in self.fetch(name)])

    def remove(self, name: str, entity_id: str) -> None:
        self._write(name, [r for r in self.fetch(name) if r["id"] != entity_id])

    def get(self, name: str, entity_id: str) -> Optional[Dict[str, Any]]:
        for r in self.fetch(name):
            if r["id"] == entity_id:
                return r
        return None

    def upsert(self, name: str, row: Dict[str, Any]) -> bool:
        """Replace the record with the same id or prepend it. Returns True when created."""
        rows = self.fetch(name)
        if any(r["id"] == row["id"] for r in rows):
            self._write(name, [row if r["id"] == row["id"] else r for r in rows])
            return False
        self._write(name, [row] + rows)
        return True

    def fetch_assets(self) -> List[Dict[str, Any]]:
        return self.fetch("assets")

    def create_asset(self, row: Dict[str, Any]) -> None:
        self._prepend("assets", row)

    def update_asset(self, row: Dict[str, Any]) -> None:
        self._replace("assets", row)

    def delete_asset(self, asset_id: str) -> None:
        self.remove("assets", asset_id)

    def fetch_work_orders(self) -> List[Dict[str, Any]]:
        return self.fetch("spks")

    def create_work_order(self, row: Dict[str, Any]) -> None:
        self._prepend("spks", row)

    def update_work_order(self, row: Dict[str, Any]) -> None:
        self._replace("spks", row)

    def fetch_technicians(self) -> List[Dict[str, Any]]:
        return self.fetch("technicians")

    def create_technician(self, row: Dict[str, Any]) -> None:
        self._prepend("technicians", row)

    def update_technician(self, row: Dict[str, Any]) -> None:
        self._replace("technicians", row)

    def delete_technician(self, technician_id: str) -> None:
        self.remove("technicians", technician_id)

    def replace_all(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for name in COLLECTIONS:
            rows = list(snapshot.get(name) or [])
            self._write(name, rows)
            counts[name] = len(rows)
        return counts

    def check_connection(self) -> bool:
        return True


# ---------------------------------------------------------------------
# Remote store
# ---------------------------------------------------------------------


class RemoteStore:
    """HTTP JSON persistence API (see routers/store.py for the server side)."""

    def __init__(self, base_url: str, *, timeout_sec: float = 10.0, session: requests.Session | None = None) -> None:
        self.base_url = str(base_url or DEFAULT_SQL_ENDPOINT).rstrip("/")
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc
        if not resp.ok:
            raise PersistenceError(f"{method} {url} returned HTTP {resp.status_code}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistenceError(f"{method} {url} returned a non-JSON body") from exc

    def _fetch(self, name: str) -> List[Dict[str, Any]]:
        _key, path, model = COLLECTIONS[name]
        return _parse_rows(model, self._request("GET", path), f"remote {path}")

    def _post(self, name: str, row: Dict[str, Any]) -> None:
        _key, path, model = COLLECTIONS[name]
        self._request("POST", path, dump_entity(model, row))

    def _put(self, name: str, row: Dict[str, Any]) -> None:
        _key, path, model = COLLECTIONS[name]
        self._request("PUT", f"{path}/{quote(str(row['id']), safe='')}", dump_entity(model, row))

    def _delete(self, name: str, entity_id: str) -> None:
        _key, path, _model = COLLECTIONS[name]
        self._request("DELETE", f"{path}/{quote(str(entity_id), safe='')}")

    def fetch_assets(self) -> List[Dict[str, Any]]:
        return self._fetch("assets")

    def create_asset(self, row: Dict[str, Any]) -> None:
        self._post("assets", row)

    def update_asset(self, row: Dict[str, Any]) -> None:
        self._put("assets", row)

    def delete_asset(self, asset_id: str) -> None:
        self._delete("assets", asset_id)

    def fetch_work_orders(self) -> List[Dict[str, Any]]:
        return self._fetch("spks")

    def create_work_order(self, row: Dict[str, Any]) -> None:
        self._post("spks", row)

    def update_work_order(self, row: Dict[str, Any]) -> None:
        self._put("spks", row)

    def fetch_technicians(self) -> List[Dict[str, Any]]:
        return self._fetch("technicians")

    def create_technician(self, row: Dict[str, Any]) -> None:
        self._post("technicians", row)

    def update_technician(self, row: Dict[str, Any]) -> None:
        self._put("technicians", row)

    def delete_technician(self, technician_id: str) -> None:
        self._delete("technicians", technician_id)

    def push_all(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        # No bulk endpoint: every record is posted, technicians before the orders that reference them.
        counts: Dict[str, int] = {}
        for name in COLLECTIONS:
            rows = list(snapshot.get(name) or [])
            for row in rows:
                self._post(name, row)
            counts[name] = len(rows)
        return counts

    def replace_all(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        """
        Post every snapshot record, then delete remote records the snapshot lacks.
        Work orders have no DELETE route; leftovers raise PersistenceError after the rest is applied.
        """
        stale: Dict[str, List[str]] = {}
        for name in COLLECTIONS:
            keep = {str(r["id"]) for r in snapshot.get(name) or []}
            stale[name] = [r["id"] for r in self._fetch(name) if r["id"] not in keep]
        counts = self.push_all(snapshot)
        for name in ("assets", "technicians"):
            for entity_id in stale[name]:
                self._delete(name, entity_id)
            counts[f"{name}_deleted"] = len(stale[name])
        if stale["spks"]:
            raise PersistenceError(
                f"remote store still holds work orders absent from the snapshot: {', '.join(stale['spks'])}"
            )
        return counts

    def check_connection(self) -> bool:
        try:
            resp = self.session.get(f"{self.base_url}/health", timeout=HEALTH_TIMEOUT_SEC)
        except requests.RequestException:
            return False
        return bool(resp.ok)


# ---------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------


class PersistenceAdapter:
    """
    Routes entity reads/writes to the local or the remote store.
    Mode, endpoint and scalar settings always live in the local store.
    """

    def __init__(
        self,
        local: LocalStore,
        *,
        default_mode: str = "",
        default_endpoint: str = DEFAULT_SQL_ENDPOINT,
        remote_timeout_sec: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.local = local
        self.remote_timeout_sec = remote_timeout_sec
        self._session = session
        mode = (local.get_item(KEY_MODE) or default_mode or MODE_LOCAL).strip().lower()
        self._mode = mode if mode in STORAGE_MODES else MODE_LOCAL
        self._endpoint = (local.get_item(KEY_ENDPOINT) or default_endpoint or DEFAULT_SQL_ENDPOINT).strip()
        self._remote: RemoteStore | None = None

    # --- mode switch ---

    def get_mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> str:
        clean = str(mode or "").strip().lower()
        if clean not in STORAGE_MODES:
            raise ValueError(f"storage mode must be one of {', '.join(STORAGE_MODES)}")
        if clean != self._mode:
            logger.info("Storage mode %s -> %s (no data migrated)", self._mode, clean)
        self._mode = clean
        self.local.set_item(KEY_MODE, clean)
        return clean

    def get_endpoint(self) -> str:
        return self._endpoint

    def set_endpoint(self, url: str) -> str:
        clean = str(url or "").strip().rstrip("/")
        if not clean.startswith(("http://", "https://")):
            raise ValueError("endpoint must start with http:// or https://")
        self._endpoint = clean
        self._remote = None
        self.local.set_item(KEY_ENDPOINT, clean)
        return clean

    def remote(self) -> RemoteStore:
        if self._remote is None:
            self._remote = RemoteStore(self._endpoint, timeout_sec=self.remote_timeout_sec, session=self._session)
        return self._remote

    def _backend(self) -> LocalStore | RemoteStore:
        return self.local if self._mode == MODE_LOCAL else self.remote()

    # --- settings ---

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self.local.get_json(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        self.local.set_json(key, value)

    # --- entities ---

    def fetch_assets(self) -> List[Dict[str, Any]]:
        return self._backend().fetch_assets()

    def create_asset(self, row: Dict[str, Any]) -> None:
        self._backend().create_asset(row)

    def update_asset(self, row: Dict[str, Any]) -> None:
        self._backend().update_asset(row)

    def delete_asset(self, asset_id: str) -> None:
        self._backend().delete_asset(asset_id)

    def fetch_work_orders(self) -> List[Dict[str, Any]]:
        return self._backend().fetch_work_orders()

    def create_work_order(self, row: Dict[str, Any]) -> None:
        self._backend().create_work_order(row)

    def update_work_order(self, row: Dict[str, Any]) -> None:
        self._backend().update_work_order(row)

    def fetch_technicians(self) -> List[Dict[str, Any]]:
        return self._backend().fetch_technicians()

    def create_technician(self, row: Dict[str, Any]) -> None:
        self._backend().create_technician(row)

    def update_technician(self, row: Dict[str, Any]) -> None:
        self._backend().update_technician(row)

    def delete_technician(self, technician_id: str) -> None:
        self._backend().delete_technician(technician_id)

    def replace_all(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        return self._backend().replace_all(snapshot)

    def migrate(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        """Copy a snapshot to the remote store whatever the current mode is."""
        counts = self.remote().push_all(snapshot)
        logger.info("Migrated snapshot to %s: %s", self._endpoint, counts)
        return counts

    def check_connection(self) -> bool:
        return self._backend().check_connection()
