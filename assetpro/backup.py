from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import ValidationError

from .ledger import Ledger, LedgerOutcome
from .models import Asset, Technician, WorkOrder, dump_entity, parse_entity

logger = logging.getLogger("assetpro.backup")

BACKUP_VERSION = "2.5"
REQUIRED_KEYS = ("assets", "spks", "technicians")

_MODELS = {"assets": Asset, "spks": WorkOrder, "technicians": Technician}


def backup_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"AssetPro_Backup_{stamp}.json"


def build_backup(ledger: Ledger) -> Dict[str, Any]:
    snap = ledger.snapshot()
    doc: Dict[str, Any] = {}
    for key, model in _MODELS.items():
        doc[key] = [dump_entity(model, row) for row in snap[key]]
    doc["categories"] = snap["categories"]
    doc["locations"] = snap["locations"]
    doc["exportDate"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    doc["version"] = BACKUP_VERSION
    return doc


def dumps_backup(doc: Dict[str, Any]) -> str:
    return json.dumps(doc, ensure_ascii=False, indent=2)


def parse_backup(raw: str | bytes | Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a backup document and return a snake_case snapshot.
    Raises ValueError before anything is touched when the file is unusable.
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ValueError("Failed to parse backup file.") from exc
    if not isinstance(data, dict) or any(data.get(k) is None for k in REQUIRED_KEYS):
        raise ValueError("Invalid backup file: Missing required data collections.")

    snapshot: Dict[str, Any] = {}
    for key, model in _MODELS.items():
        items = data[key]
        if not isinstance(items, list):
            raise ValueError(f"Invalid backup file: {key} must be a list.")
        try:
            snapshot[key] = [parse_entity(model, d) for d in items]
        except ValidationError as exc:
            raise ValueError(f"Invalid backup file: {key} has {exc.error_count()} invalid fields.") from exc
        ids = [r["id"] for r in snapshot[key]]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Invalid backup file: duplicate ids in {key}.")
    for key in ("categories", "locations"):
        values = data.get(key)
        if values is None:
            snapshot[key] = None
        elif isinstance(values, list):
            snapshot[key] = [str(x).strip() for x in values if str(x).strip()]
        else:
            raise ValueError(f"Invalid backup file: {key} must be a list.")
    snapshot["exportDate"] = data.get("exportDate")
    snapshot["version"] = data.get("version")
    return snapshot


def restore_backup(ledger: Ledger, raw: str | bytes | Dict[str, Any]) -> LedgerOutcome:
    snapshot = parse_backup(raw)
    logger.info(
        "Restoring backup version=%s exported=%s",
        snapshot.get("version") or "-",
        snapshot.get("exportDate") or "-",
    )
    return ledger.restore(snapshot)
