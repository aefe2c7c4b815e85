from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from ..deps import get_ledger
from ..ledger import Ledger
from ..models import dump_entity, parse_entity
from ..storage import COLLECTIONS, LocalStore, PersistenceError

# Server side of the remote persistence contract. Always writes this node's local store;
# a ledger running on the same node picks the changes up on /admin/storage/reload.
router = APIRouter(tags=["store"])

_DELETABLE = {"assets", "technicians"}


def _local(ledger: Ledger) -> LocalStore:
    return ledger.store.local


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"unknown collection: {collection}")


def _parse_body(collection: str, body: Dict[str, Any]) -> Dict[str, Any]:
    _key, _path, model = COLLECTIONS[collection]
    try:
        return parse_entity(model, body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False)) from e


def _store_error(e: PersistenceError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(e))


@router.get("/health")
def health(ledger: Ledger = Depends(get_ledger)):
    return {"ok": True, "mode": ledger.store.get_mode()}


@router.get("/{collection}")
def list_records(collection: str, ledger: Ledger = Depends(get_ledger)):
    _check_collection(collection)
    _key, _path, model = COLLECTIONS[collection]
    try:
        rows = _local(ledger).fetch(collection)
    except PersistenceError as e:
        raise _store_error(e) from e
    return [dump_entity(model, r) for r in rows]


@router.post("/{collection}", status_code=201)
def create_record(collection: str, body: Dict[str, Any] = Body(...), ledger: Ledger = Depends(get_ledger)):
    _check_collection(collection)
    row = _parse_body(collection, body)
    try:
        created = _local(ledger).upsert(collection, row)
    except PersistenceError as e:
        raise _store_error(e) from e
    return {"ok": True, "id": row["id"], "created": created}


@router.put("/{collection}/{entity_id}")
def replace_record(
    collection: str,
    entity_id: str,
    body: Dict[str, Any] = Body(...),
    ledger: Ledger = Depends(get_ledger),
):
    _check_collection(collection)
    row = _parse_body(collection, body)
    if row["id"] != entity_id:
        raise HTTPException(status_code=400, detail="id in body does not match path")
    local = _local(ledger)
    try:
        if local.get(collection, entity_id) is None:
            raise HTTPException(status_code=404, detail=f"{collection} {entity_id} not found")
        local.upsert(collection, row)
    except PersistenceError as e:
        raise _store_error(e) from e
    return {"ok": True, "id": entity_id}


@router.delete("/{collection}/{entity_id}")
def delete_record(collection: str, entity_id: str, ledger: Ledger = Depends(get_ledger)):
    _check_collection(collection)
    if collection not in _DELETABLE:
        raise HTTPException(status_code=405, detail=f"{collection} cannot be deleted")
    try:
        _local(ledger).remove(collection, entity_id)
    except PersistenceError as e:
        raise _store_error(e) from e
    return {"ok": True, "id": entity_id}
