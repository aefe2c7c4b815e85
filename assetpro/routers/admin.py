from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..auth import ROLE_ADMIN, check_admin_password, clear_session_cookie, make_session, set_session_cookie
from ..backup import backup_filename, build_backup, restore_backup
from ..config import Settings
from ..deps import CurrentUser, get_admin_user, get_ledger, get_monitor, get_settings
from ..ledger import Ledger, LedgerOutcome
from ..models import (
    AdminLoginIn,
    AssetCreateIn,
    AssetPatchIn,
    AssetStatusIn,
    CatalogEntryIn,
    StorageModeIn,
    TechnicianCreateIn,
    TechnicianPromoteIn,
    WorkOrderCreateIn,
    WorkOrderPatchIn,
    WorkOrderReassignIn,
    WorkOrderStatusIn,
)
from ..monitor import ConnectionMonitor
from ..storage import PersistenceError

logger = logging.getLogger("assetpro.api")

router = APIRouter(tags=["admin"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=404 if "not found" in str(e) else 400, detail=str(e))


def _public_technician(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    out.pop("password", None)
    return out


def _outcome(out: LedgerOutcome) -> Dict[str, Any]:
    return out.as_dict()


@router.post("/admin/login")
def admin_login(payload: AdminLoginIn, response: Response, settings: Settings = Depends(get_settings)):
    if not check_admin_password(payload.password, settings.admin_password):
        logger.warning("Admin login rejected")
        raise HTTPException(status_code=401, detail="invalid password")
    set_session_cookie(response, make_session(ROLE_ADMIN, "admin"), settings.session_max_age)
    return {"ok": True, "role": ROLE_ADMIN}


@router.post("/admin/logout")
def admin_logout(response: Response):
    clear_session_cookie(response)
    return {"ok": True}


# --- assets ---


@router.get("/admin/assets")
def admin_list_assets(
    q: str = Query(""),
    status: str = Query(""),
    category: str = Query(""),
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    return {"ok": True, "items": ledger.list_assets(q=q, status=status, category=category)}


@router.get("/admin/assets/{asset_id}")
def admin_get_asset(asset_id: str, ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    item = ledger.get_asset(asset_id)
    if not item:
        raise HTTPException(status_code=404, detail="asset not found")
    return {"ok": True, "item": item}


@router.post("/admin/assets", status_code=201)
def admin_create_asset(
    payload: AssetCreateIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.register_asset(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.patch("/admin/assets/{asset_id}")
def admin_patch_asset(
    asset_id: str,
    payload: AssetPatchIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.update_asset(asset_id, payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.put("/admin/assets/{asset_id}/status")
def admin_set_asset_status(
    asset_id: str,
    payload: AssetStatusIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.update_asset_status(asset_id, payload.status)
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.delete("/admin/assets/{asset_id}")
def admin_delete_asset(asset_id: str, ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    try:
        out = ledger.delete_asset(asset_id)
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


# --- work orders ---


@router.get("/admin/work-orders")
def admin_list_work_orders(
    q: str = Query(""),
    status: str = Query(""),
    technician_id: str = Query(""),
    asset_id: str = Query(""),
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    items = ledger.list_work_orders(q=q, status=status, technician_id=technician_id, asset_id=asset_id)
    return {"ok": True, "items": items}


@router.get("/admin/work-orders/{work_order_id}")
def admin_get_work_order(
    work_order_id: str,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    item = ledger.get_work_order(work_order_id)
    if not item:
        raise HTTPException(status_code=404, detail="work order not found")
    return {"ok": True, "item": item}


@router.post("/admin/work-orders", status_code=201)
def admin_create_work_order(
    payload: WorkOrderCreateIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.create_work_order(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.patch("/admin/work-orders/{work_order_id}")
def admin_patch_work_order(
    work_order_id: str,
    payload: WorkOrderPatchIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    changes = payload.model_dump(exclude_none=True)
    changes["id"] = work_order_id
    try:
        out = ledger.update_work_order(changes)
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.post("/admin/work-orders/{work_order_id}/reassign")
def admin_reassign_work_order(
    work_order_id: str,
    payload: WorkOrderReassignIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.reassign_work_order(work_order_id, payload.technician_id)
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


@router.post("/admin/work-orders/{work_order_id}/status")
def admin_set_work_order_status(
    work_order_id: str,
    payload: WorkOrderStatusIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.update_work_order_status(work_order_id, payload.status, payload.note, payload.evidence)
    except ValueError as e:
        raise _http_error(e) from e
    return _outcome(out)


# --- technicians ---


@router.get("/admin/technicians")
def admin_list_technicians(
    q: str = Query(""),
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    return {"ok": True, "items": [_public_technician(x) for x in ledger.list_technicians(q=q)]}


@router.post("/admin/technicians", status_code=201)
def admin_create_technician(
    payload: TechnicianCreateIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.register_technician(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise _http_error(e) from e
    out.item = _public_technician(out.item or {})
    return _outcome(out)


@router.put("/admin/technicians/{technician_id}/rank")
def admin_promote_technician(
    technician_id: str,
    payload: TechnicianPromoteIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.promote_technician(technician_id, payload.rank)
    except ValueError as e:
        raise _http_error(e) from e
    out.item = _public_technician(out.item or {})
    return _outcome(out)


@router.delete("/admin/technicians/{technician_id}")
def admin_delete_technician(
    technician_id: str,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.delete_technician(technician_id)
    except ValueError as e:
        raise _http_error(e) from e
    out.item = _public_technician(out.item or {})
    return _outcome(out)


@router.post("/admin/reconcile")
def admin_reconcile(ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    return _outcome(ledger.reconcile())


# --- catalog ---


@router.get("/admin/catalog")
def admin_get_catalog(ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    return {"ok": True, "categories": ledger.categories(), "locations": ledger.locations()}


@router.post("/admin/catalog/categories")
def admin_add_category(
    payload: CatalogEntryIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.add_category(payload.name)
    except ValueError as e:
        raise _http_error(e) from e
    return {**_outcome(out), "items": out.item["items"]}


@router.delete("/admin/catalog/categories/{name}")
def admin_remove_category(name: str, ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    try:
        out = ledger.remove_category(name)
    except ValueError as e:
        raise _http_error(e) from e
    return {**_outcome(out), "items": out.item["items"]}


@router.post("/admin/catalog/locations")
def admin_add_location(
    payload: CatalogEntryIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        out = ledger.add_location(payload.name)
    except ValueError as e:
        raise _http_error(e) from e
    return {**_outcome(out), "items": out.item["items"]}


@router.delete("/admin/catalog/locations/{name}")
def admin_remove_location(name: str, ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    try:
        out = ledger.remove_location(name)
    except ValueError as e:
        raise _http_error(e) from e
    return {**_outcome(out), "items": out.item["items"]}


# --- backup / restore ---


@router.get("/admin/backup")
def admin_backup(ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    filename = backup_filename()
    return JSONResponse(
        build_backup(ledger),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/admin/restore")
async def admin_restore(
    request: Request,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_admin_user),
):
    raw = await request.body()
    try:
        out = await run_in_threadpool(restore_backup, ledger, raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _outcome(out)


# --- storage ---


@router.get("/admin/storage")
def admin_storage_status(
    ledger: Ledger = Depends(get_ledger),
    monitor: ConnectionMonitor = Depends(get_monitor),
    user: CurrentUser = Depends(get_admin_user),
):
    return {"ok": True, "ledger": ledger.status(), "monitor": monitor.status()}


@router.put("/admin/storage")
def admin_set_storage(
    payload: StorageModeIn,
    ledger: Ledger = Depends(get_ledger),
    monitor: ConnectionMonitor = Depends(get_monitor),
    settings: Settings = Depends(get_settings),
    user: CurrentUser = Depends(get_admin_user),
):
    try:
        if payload.endpoint:
            ledger.store.set_endpoint(payload.endpoint)
        ledger.store.set_mode(payload.mode)
    except (ValueError, PersistenceError) as e:
        raise _http_error(e) from e
    loaded = ledger.load(reconcile=settings.reconcile_on_load)
    monitor.check_now()
    return {"ok": bool(loaded.get("ok")), "load": loaded, "ledger": ledger.status()}


@router.post("/admin/storage/migrate")
def admin_migrate_storage(ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_admin_user)):
    return _outcome(ledger.migrate_to_remote())


@router.post("/admin/storage/reload")
def admin_reload_storage(
    ledger: Ledger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    user: CurrentUser = Depends(get_admin_user),
):
    loaded = ledger.load(reconcile=settings.reconcile_on_load)
    return {"ok": bool(loaded.get("ok")), "load": loaded}
