from __future__ import annotations

import hmac
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .models import (
    ACTIVE_WORK_ORDER_STATUSES,
    ASSET_OPERATIONAL,
    ASSET_STATUSES,
    ASSET_UNDER_REPAIR,
    DEFAULT_TECHNICIAN_PASSWORD,
    RANKS,
    WO_COMPLETED,
    WO_OPEN,
    WORK_ORDER_STATUSES,
    Asset,
    Technician,
    WireModel,
    WorkOrder,
)
from .seed import DEFAULT_CATEGORIES, DEFAULT_LOCATIONS, demo_snapshot
from .storage import (
    KEY_CATEGORIES,
    KEY_LOCATIONS,
    KEY_SEEDED,
    MODE_LOCAL,
    PersistenceAdapter,
    PersistenceError,
)

logger = logging.getLogger("assetpro.ledger")

APPLIED = "APPLIED"
SKIPPED_REFERENCE_NOT_FOUND = "SKIPPED_REFERENCE_NOT_FOUND"
ORPHANED = "ORPHANED"

# fields an admin edit may change on a work order; status and completion go through update_work_order_status
WORK_ORDER_EDITABLE = ("technician_id", "title", "description", "priority", "due_date")
ASSET_EDITABLE = (
    "name",
    "category",
    "location",
    "purchase_date",
    "arrived_date",
    "status",
    "image_url",
    "last_maintenance",
)

_ASSET_ID_RE = re.compile(r"^AST-(\d+)$")


class LedgerValidationError(ValueError):
    pass


class ReferenceNotFound(ValueError):
    pass


@dataclass
class SideEffect:
    entity: str
    entity_id: str
    action: str
    outcome: str = APPLIED

    def as_dict(self) -> Dict[str, str]:
        return {
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "outcome": self.outcome,
        }


@dataclass
class LedgerOutcome:
    """Result of one orchestrator call: the primary write plus its bookkeeping."""

    item: Optional[Dict[str, Any]] = None
    applied: bool = True
    reason: str = ""
    effects: List[SideEffect] = field(default_factory=list)
    persist_errors: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> List[SideEffect]:
        return [e for e in self.effects if e.outcome == SKIPPED_REFERENCE_NOT_FOUND]

    @property
    def ok(self) -> bool:
        return self.applied and not self.persist_errors and not self.skipped

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "applied": self.applied,
            "reason": self.reason,
            "item": self.item,
            "effects": [e.as_dict() for e in self.effects],
            "persist_errors": list(self.persist_errors),
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _validated(model: type[WireModel], row: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return model.model_validate(row).model_dump()
    except ValidationError as exc:
        detail = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
        raise LedgerValidationError(detail) from exc


def _matches(row: Dict[str, Any], q: str, keys: tuple[str, ...]) -> bool:
    return any(q in str(row.get(k) or "").lower() for k in keys)


class Ledger:
    """
    Sole writer of work orders and of the fields derived from them:
    asset.status on open/complete and technician.active_tasks.
    """

    def __init__(self, store: PersistenceAdapter, *, strict_references: bool = False, seed_demo: bool = True) -> None:
        self._lock = threading.Lock()
        self.store = store
        self.strict_references = strict_references
        self.seed_demo = seed_demo
        self.connected = True
        self.last_error = ""
        self._assets: Dict[str, Dict[str, Any]] = {}
        self._work_orders: Dict[str, Dict[str, Any]] = {}
        self._technicians: Dict[str, Dict[str, Any]] = {}
        self._categories: List[str] = list(DEFAULT_CATEGORIES)
        self._locations: List[str] = list(DEFAULT_LOCATIONS)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, *, reconcile: bool = False) -> Dict[str, Any]:
        with self._lock:
            try:
                if self.store.get_mode() == MODE_LOCAL and self.seed_demo and not self.store.get_setting(KEY_SEEDED, False):
                    self._seed_unlocked()
                assets = self.store.fetch_assets()
                orders = self.store.fetch_work_orders()
                technicians = self.store.fetch_technicians()
                categories = self.store.get_setting(KEY_CATEGORIES, DEFAULT_CATEGORIES)
                locations = self.store.get_setting(KEY_LOCATIONS, DEFAULT_LOCATIONS)
            except PersistenceError as exc:
                self.connected = False
                self.last_error = str(exc)
                logger.warning("Ledger load failed, keeping in-memory state: %s", exc)
                return {"ok": False, "error": str(exc)}
            self._assets = {r["id"]: r for r in assets}
            self._work_orders = {r["id"]: r for r in orders}
            self._technicians = {r["id"]: r for r in technicians}
            self._categories = sorted({str(x).strip() for x in categories or [] if str(x).strip()})
            self._locations = sorted({str(x).strip() for x in locations or [] if str(x).strip()})
            self.connected = True
            self.last_error = ""
            summary = {
                "ok": True,
                "mode": self.store.get_mode(),
                "assets": len(self._assets),
                "spks": len(self._work_orders),
                "technicians": len(self._technicians),
            }
        logger.info("Ledger loaded: %s", summary)
        if reconcile:
            summary["drift"] = self.reconcile().item["drift"]
        return summary

    def _seed_unlocked(self) -> None:
        self.store.replace_all(demo_snapshot())
        self.store.set_setting(KEY_CATEGORIES, list(DEFAULT_CATEGORIES))
        self.store.set_setting(KEY_LOCATIONS, list(DEFAULT_LOCATIONS))
        self.store.set_setting(KEY_SEEDED, True)
        logger.info("Seeded demo ledger data")

    # ------------------------------------------------------------------
    # Internal bookkeeping
    # ------------------------------------------------------------------

    def _persist(self, outcome: LedgerOutcome, label: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except PersistenceError as exc:
            outcome.persist_errors.append(f"{label}: {exc}")
            self.last_error = str(exc)
            logger.warning("Persistence failure (%s): %s", label, exc)

    def _bump_technician_unlocked(self, outcome: LedgerOutcome, technician_id: str, delta: int, action: str) -> None:
        tech = self._technicians.get(technician_id)
        if tech is None:
            outcome.effects.append(SideEffect("technician", technician_id, action, SKIPPED_REFERENCE_NOT_FOUND))
            logger.warning("Technician %s not found, %s skipped", technician_id, action)
            return
        updated = dict(tech)
        updated["active_tasks"] = max(0, int(tech.get("active_tasks") or 0) + delta)
        self._technicians = {**self._technicians, technician_id: updated}
        outcome.effects.append(SideEffect("technician", technician_id, action))
        self._persist(outcome, f"update technician {technician_id}", self.store.update_technician, updated)

    def _sync_asset_status_unlocked(
        self,
        outcome: LedgerOutcome,
        asset_id: str,
        status: str,
        action: str,
        *,
        maintained_on: str = "",
    ) -> None:
        asset = self._assets.get(asset_id)
        if asset is None:
            outcome.effects.append(SideEffect("asset", asset_id, action, SKIPPED_REFERENCE_NOT_FOUND))
            logger.warning("Asset %s not found, %s skipped", asset_id, action)
            return
        updated = dict(asset)
        updated["status"] = status
        if maintained_on:
            updated["last_maintenance"] = maintained_on
        self._assets = {**self._assets, asset_id: updated}
        outcome.effects.append(SideEffect("asset", asset_id, action))
        self._persist(outcome, f"update asset {asset_id}", self.store.update_asset, updated)

    def _next_asset_id(self) -> str:
        nums = [int(m.group(1)) for m in (_ASSET_ID_RE.match(k) for k in self._assets) if m]
        return f"AST-{(max(nums) + 1) if nums else 1:03d}"

    def _next_work_order_id(self) -> str:
        year = _utc_now().strftime("%Y")
        pat = re.compile(rf"^SPK-{year}-(\d+)$")
        nums = [int(m.group(1)) for m in (pat.match(k) for k in self._work_orders) if m]
        return f"SPK-{year}-{(max(nums) + 1) if nums else 1:03d}"

    def _require_work_order(self, work_order_id: str) -> Dict[str, Any]:
        row = self._work_orders.get(str(work_order_id))
        if row is None:
            raise ReferenceNotFound(f"work order {work_order_id} not found")
        return row

    # ------------------------------------------------------------------
    # Work orders
    # ------------------------------------------------------------------

    def create_work_order(self, payload: Dict[str, Any]) -> LedgerOutcome:
        with self._lock:
            row = dict(payload)
            row["id"] = str(row.get("id") or "").strip() or self._next_work_order_id()
            row["status"] = WO_OPEN
            row["completed_at"] = None
            row["completion_note"] = None
            row["created_at"] = str(row.get("created_at") or "").strip() or _now_iso()
            row = _validated(WorkOrder, row)
            if row["id"] in self._work_orders:
                raise LedgerValidationError(f"work order {row['id']} already exists")
            if self.strict_references:
                if row["asset_id"] not in self._assets:
                    raise ReferenceNotFound(f"asset {row['asset_id']} not found")
                if row["technician_id"] not in self._technicians:
                    raise ReferenceNotFound(f"technician {row['technician_id']} not found")

            self._work_orders = {row["id"]: row, **self._work_orders}
            outcome = LedgerOutcome(item=dict(row))
            self._persist(outcome, f"create work order {row['id']}", self.store.create_work_order, row)
            self._bump_technician_unlocked(outcome, row["technician_id"], +1, "increment_active_tasks")
            self._sync_asset_status_unlocked(outcome, row["asset_id"], ASSET_UNDER_REPAIR, "open_work_order")
        logger.info("Work order %s opened on %s for %s", row["id"], row["asset_id"], row["technician_id"])
        return outcome

    def update_work_order(self, payload: Dict[str, Any]) -> LedgerOutcome:
        with self._lock:
            return self._update_work_order_unlocked(payload)

    def _update_work_order_unlocked(self, payload: Dict[str, Any]) -> LedgerOutcome:
        current = self._require_work_order(str(payload.get("id") or ""))
        new_tech = str(payload.get("technician_id") or current["technician_id"]).strip()
        handover = new_tech != current["technician_id"]
        if handover and current["status"] == WO_COMPLETED:
            logger.info("Handover of completed work order %s ignored", current["id"])
            return LedgerOutcome(item=dict(current), applied=False, reason="completed")
        if handover and self.strict_references and new_tech not in self._technicians:
            raise ReferenceNotFound(f"technician {new_tech} not found")

        updated = dict(current)
        for key in WORK_ORDER_EDITABLE:
            if payload.get(key) is not None:
                updated[key] = payload[key]
        updated["technician_id"] = new_tech
        updated = _validated(WorkOrder, updated)

        self._work_orders = {**self._work_orders, updated["id"]: updated}
        outcome = LedgerOutcome(item=dict(updated))
        self._persist(outcome, f"update work order {updated['id']}", self.store.update_work_order, updated)
        if handover:
            self._bump_technician_unlocked(outcome, current["technician_id"], -1, "decrement_active_tasks")
            self._bump_technician_unlocked(outcome, new_tech, +1, "increment_active_tasks")
            logger.info("Work order %s handed over %s -> %s", updated["id"], current["technician_id"], new_tech)
        return outcome

    def reassign_work_order(self, work_order_id: str, technician_id: str) -> LedgerOutcome:
        with self._lock:
            current = self._require_work_order(work_order_id)
            if current["technician_id"] == str(technician_id).strip():
                return LedgerOutcome(item=dict(current), applied=False, reason="unchanged")
            return self._update_work_order_unlocked({"id": current["id"], "technician_id": technician_id})

    def update_work_order_status(
        self,
        work_order_id: str,
        status: str,
        note: Optional[str] = None,
        evidence: Optional[List[str]] = None,
    ) -> LedgerOutcome:
        if status not in WORK_ORDER_STATUSES:
            raise LedgerValidationError(f"status must be one of {', '.join(WORK_ORDER_STATUSES)}")
        with self._lock:
            current = self._require_work_order(work_order_id)
            prev_status = current["status"]
            if prev_status == WO_COMPLETED and status != WO_COMPLETED:
                raise LedgerValidationError(f"work order {current['id']} is completed and cannot move to {status}")
            clean_note = str(note).strip() if note is not None else ""
            if status == WO_COMPLETED and not (clean_note or str(current.get("completion_note") or "").strip()):
                raise LedgerValidationError("completion note is required to complete a work order")

            first_completion = status == WO_COMPLETED and prev_status != WO_COMPLETED
            updated = dict(current)
            updated["status"] = status
            if clean_note:
                updated["completion_note"] = clean_note
            if evidence is not None:
                updated["evidence"] = [str(x).strip() for x in evidence if str(x).strip()]
            if first_completion:
                updated["completed_at"] = _now_iso()

            self._work_orders = {**self._work_orders, updated["id"]: updated}
            outcome = LedgerOutcome(item=dict(updated))
            self._persist(outcome, f"update work order {updated['id']}", self.store.update_work_order, updated)
            if first_completion:
                self._bump_technician_unlocked(outcome, updated["technician_id"], -1, "decrement_active_tasks")
                self._sync_asset_status_unlocked(
                    outcome,
                    updated["asset_id"],
                    ASSET_OPERATIONAL,
                    "complete_work_order",
                    maintained_on=updated["completed_at"][:10],
                )
        logger.info("Work order %s status %s -> %s", updated["id"], prev_status, status)
        return outcome

    def list_work_orders(
        self,
        *,
        q: str = "",
        status: str = "",
        technician_id: str = "",
        asset_id: str = "",
    ) -> List[Dict[str, Any]]:
        rows = list(self._work_orders.values())
        clean_q = str(q or "").strip().lower()
        if clean_q:
            rows = [x for x in rows if _matches(x, clean_q, ("id", "title", "description", "asset_id"))]
        if status:
            rows = [x for x in rows if x["status"] == status]
        if technician_id:
            rows = [x for x in rows if x["technician_id"] == technician_id]
        if asset_id:
            rows = [x for x in rows if x["asset_id"] == asset_id]
        return [dict(x) for x in rows]

    def get_work_order(self, work_order_id: str) -> Optional[Dict[str, Any]]:
        row = self._work_orders.get(str(work_order_id))
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def register_asset(self, payload: Dict[str, Any]) -> LedgerOutcome:
        today = _utc_now().date().isoformat()
        with self._lock:
            row = dict(payload)
            row["id"] = str(row.get("id") or "").strip() or self._next_asset_id()
            row["purchase_date"] = row.get("purchase_date") or today
            row["arrived_date"] = row.get("arrived_date") or today
            row["last_maintenance"] = row.get("last_maintenance") or "Never"
            row["image_url"] = row.get("image_url") or f"https://picsum.photos/seed/{row['id']}/400/300"
            row = _validated(Asset, row)
            if row["id"] in self._assets:
                raise LedgerValidationError(f"asset {row['id']} already exists")
            self._assets = {row["id"]: row, **self._assets}
            outcome = LedgerOutcome(item=dict(row))
            self._persist(outcome, f"create asset {row['id']}", self.store.create_asset, row)
        logger.info("Asset %s registered", row["id"])
        return outcome

    def update_asset(self, asset_id: str, changes: Dict[str, Any]) -> LedgerOutcome:
        with self._lock:
            current = self._assets.get(str(asset_id))
            if current is None:
                raise ReferenceNotFound(f"asset {asset_id} not found")
            updated = dict(current)
            for key in ASSET_EDITABLE:
                if changes.get(key) is not None:
                    updated[key] = changes[key]
            updated = _validated(Asset, updated)
            self._assets = {**self._assets, updated["id"]: updated}
            outcome = LedgerOutcome(item=dict(updated))
            self._persist(outcome, f"update asset {updated['id']}", self.store.update_asset, updated)
        return outcome

    def update_asset_status(self, asset_id: str, status: str) -> LedgerOutcome:
        if status not in ASSET_STATUSES:
            raise LedgerValidationError(f"status must be one of {', '.join(ASSET_STATUSES)}")
        with self._lock:
            current = self._assets.get(str(asset_id))
            if current is None:
                raise ReferenceNotFound(f"asset {asset_id} not found")
            updated = dict(current)
            updated["status"] = status
            self._assets = {**self._assets, updated["id"]: updated}
            outcome = LedgerOutcome(item=dict(updated))
            self._persist(outcome, f"update asset {updated['id']}", self.store.update_asset, updated)
        return outcome

    def delete_asset(self, asset_id: str) -> LedgerOutcome:
        with self._lock:
            current = self._assets.get(str(asset_id))
            if current is None:
                raise ReferenceNotFound(f"asset {asset_id} not found")
            self._assets = {k: v for k, v in self._assets.items() if k != current["id"]}
            outcome = LedgerOutcome(item=dict(current))
            for w in self._work_orders.values():
                if w["asset_id"] == current["id"]:
                    outcome.effects.append(SideEffect("work_order", w["id"], "asset_deleted", ORPHANED))
            self._persist(outcome, f"delete asset {current['id']}", self.store.delete_asset, current["id"])
        logger.info("Asset %s deleted, %s work orders orphaned", current["id"], len(outcome.effects))
        return outcome

    def list_assets(self, *, q: str = "", status: str = "", category: str = "") -> List[Dict[str, Any]]:
        rows = list(self._assets.values())
        clean_q = str(q or "").strip().lower()
        if clean_q:
            rows = [x for x in rows if _matches(x, clean_q, ("id", "name", "category", "location"))]
        if status:
            rows = [x for x in rows if x["status"] == status]
        if category:
            rows = [x for x in rows if x["category"] == category]
        return [dict(x) for x in rows]

    def get_asset(self, asset_id: str) -> Optional[Dict[str, Any]]:
        row = self._assets.get(str(asset_id))
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Technicians
    # ------------------------------------------------------------------

    def register_technician(self, payload: Dict[str, Any]) -> LedgerOutcome:
        with self._lock:
            row = dict(payload)
            row["active_tasks"] = 0
            row["rank"] = row.get("rank") or RANKS[0]
            row["password"] = row.get("password") or DEFAULT_TECHNICIAN_PASSWORD
            row = _validated(Technician, row)
            if row["id"] in self._technicians:
                raise LedgerValidationError(f"technician {row['id']} already exists")
            self._technicians = {row["id"]: row, **self._technicians}
            outcome = LedgerOutcome(item=dict(row))
            self._persist(outcome, f"create technician {row['id']}", self.store.create_technician, row)
        logger.info("Technician %s registered", row["id"])
        return outcome

    def promote_technician(self, technician_id: str, rank: str) -> LedgerOutcome:
        if rank not in RANKS:
            raise LedgerValidationError(f"rank must be one of {', '.join(RANKS)}")
        with self._lock:
            current = self._technicians.get(str(technician_id))
            if current is None:
                raise ReferenceNotFound(f"technician {technician_id} not found")
            updated = dict(current)
            updated["rank"] = rank
            self._technicians = {**self._technicians, updated["id"]: updated}
            outcome = LedgerOutcome(item=dict(updated))
            self._persist(outcome, f"update technician {updated['id']}", self.store.update_technician, updated)
        logger.info("Technician %s rank %s -> %s", updated["id"], current.get("rank"), rank)
        return outcome

    def delete_technician(self, technician_id: str) -> LedgerOutcome:
        with self._lock:
            current = self._technicians.get(str(technician_id))
            if current is None:
                raise ReferenceNotFound(f"technician {technician_id} not found")
            self._technicians = {k: v for k, v in self._technicians.items() if k != current["id"]}
            outcome = LedgerOutcome(item=dict(current))
            for w in self._work_orders.values():
                if w["technician_id"] == current["id"] and w["status"] in ACTIVE_WORK_ORDER_STATUSES:
                    outcome.effects.append(SideEffect("work_order", w["id"], "technician_deleted", ORPHANED))
            self._persist(outcome, f"delete technician {current['id']}", self.store.delete_technician, current["id"])
        if outcome.effects:
            logger.warning("Technician %s deleted with %s open work orders orphaned", current["id"], len(outcome.effects))
        return outcome

    def authenticate_technician(self, technician_id: str, password: str) -> Optional[Dict[str, Any]]:
        row = self._technicians.get(str(technician_id or "").strip())
        if row is None:
            return None
        stored = str(row.get("password") or "")
        if not stored or not hmac.compare_digest(stored.encode("utf-8"), str(password or "").encode("utf-8")):
            return None
        return dict(row)

    def list_technicians(self, *, q: str = "") -> List[Dict[str, Any]]:
        rows = list(self._technicians.values())
        clean_q = str(q or "").strip().lower()
        if clean_q:
            rows = [x for x in rows if _matches(x, clean_q, ("id", "name", "specialty"))]
        return [dict(x) for x in rows]

    def get_technician(self, technician_id: str) -> Optional[Dict[str, Any]]:
        row = self._technicians.get(str(technician_id))
        return dict(row) if row else None

    def reconcile(self) -> LedgerOutcome:
        """Recompute active_tasks from the work-order set and persist any corrections."""
        with self._lock:
            counts = {tid: 0 for tid in self._technicians}
            for w in self._work_orders.values():
                if w["status"] in ACTIVE_WORK_ORDER_STATUSES and w["technician_id"] in counts:
                    counts[w["technician_id"]] += 1
            drift: List[Dict[str, Any]] = []
            outcome = LedgerOutcome()
            for tid, tech in list(self._technicians.items()):
                recorded = int(tech.get("active_tasks") or 0)
                if recorded == counts[tid]:
                    continue
                drift.append({"technician_id": tid, "recorded": recorded, "actual": counts[tid]})
                updated = dict(tech)
                updated["active_tasks"] = counts[tid]
                self._technicians = {**self._technicians, tid: updated}
                outcome.effects.append(SideEffect("technician", tid, "reconcile_active_tasks"))
                self._persist(outcome, f"update technician {tid}", self.store.update_technician, updated)
            outcome.item = {"drift": drift}
        if drift:
            logger.warning("Reconcile corrected %s technician workloads: %s", len(drift), drift)
        return outcome

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def _catalog_change(self, kind: str, name: str, *, add: bool) -> LedgerOutcome:
        clean = str(name or "").strip()
        if not clean:
            raise LedgerValidationError(f"{kind} name is required")
        key = KEY_CATEGORIES if kind == "category" else KEY_LOCATIONS
        with self._lock:
            current = self._categories if kind == "category" else self._locations
            if add:
                if clean in current:
                    return LedgerOutcome(item={"items": list(current)}, applied=False, reason="exists")
                values = sorted(current + [clean])
            else:
                if clean not in current:
                    raise ReferenceNotFound(f"{kind} {clean} not found")
                values = [x for x in current if x != clean]
            if kind == "category":
                self._categories = values
            else:
                self._locations = values
            outcome = LedgerOutcome(item={"items": list(values)})
            self._persist(outcome, f"save {key}", self.store.set_setting, key, values)
        return outcome

    def add_category(self, name: str) -> LedgerOutcome:
        return self._catalog_change("category", name, add=True)

    def remove_category(self, name: str) -> LedgerOutcome:
        return self._catalog_change("category", name, add=False)

    def add_location(self, name: str) -> LedgerOutcome:
        return self._catalog_change("location", name, add=True)

    def remove_location(self, name: str) -> LedgerOutcome:
        return self._catalog_change("location", name, add=False)

    def categories(self) -> List[str]:
        return list(self._categories)

    def locations(self) -> List[str]:
        return list(self._locations)

    # ------------------------------------------------------------------
    # Snapshot / restore / migrate
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "assets": [dict(x) for x in self._assets.values()],
                "spks": [dict(x) for x in self._work_orders.values()],
                "technicians": [dict(x) for x in self._technicians.values()],
                "categories": list(self._categories),
                "locations": list(self._locations),
            }

    def restore(self, snapshot: Dict[str, Any]) -> LedgerOutcome:
        """Replace every collection wholesale. The snapshot must already be validated."""
        with self._lock:
            self._assets = {r["id"]: dict(r) for r in snapshot["assets"]}
            self._work_orders = {r["id"]: dict(r) for r in snapshot["spks"]}
            self._technicians = {r["id"]: dict(r) for r in snapshot["technicians"]}
            if snapshot.get("categories") is not None:
                self._categories = sorted(set(snapshot["categories"]))
            if snapshot.get("locations") is not None:
                self._locations = sorted(set(snapshot["locations"]))
            counts = {
                "assets": len(self._assets),
                "spks": len(self._work_orders),
                "technicians": len(self._technicians),
            }
            outcome = LedgerOutcome(item=counts)
            self._persist(
                outcome,
                "replace all collections",
                self.store.replace_all,
                {
                    "assets": list(self._assets.values()),
                    "technicians": list(self._technicians.values()),
                    "spks": list(self._work_orders.values()),
                },
            )
            self._persist(outcome, "save categories", self.store.set_setting, KEY_CATEGORIES, list(self._categories))
            self._persist(outcome, "save locations", self.store.set_setting, KEY_LOCATIONS, list(self._locations))
        logger.info("Ledger restored: %s", counts)
        return outcome

    def migrate_to_remote(self) -> LedgerOutcome:
        snap = self.snapshot()
        outcome = LedgerOutcome()
        try:
            outcome.item = self.store.migrate(snap)
        except PersistenceError as exc:
            outcome.applied = False
            outcome.reason = "remote_unreachable"
            outcome.persist_errors.append(f"migrate: {exc}")
            logger.warning("Migration to remote store failed: %s", exc)
        return outcome

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self.store.get_mode(),
            "endpoint": self.store.get_endpoint(),
            "connected": self.connected,
            "last_error": self.last_error,
            "strict_references": self.strict_references,
            "assets": len(self._assets),
            "spks": len(self._work_orders),
            "technicians": len(self._technicians),
        }
