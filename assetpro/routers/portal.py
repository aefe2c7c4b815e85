from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..auth import ROLE_TECHNICIAN, clear_session_cookie, make_session, set_session_cookie
from ..config import Settings
from ..deps import CurrentUser, get_ledger, get_settings, get_technician_user
from ..ledger import Ledger
from ..models import TechnicianLoginIn, WorkOrderStatusIn

logger = logging.getLogger("assetpro.api")

router = APIRouter(tags=["portal"])


@router.post("/portal/login")
def portal_login(
    payload: TechnicianLoginIn,
    response: Response,
    ledger: Ledger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    tech = ledger.authenticate_technician(payload.technician_id, payload.password)
    if not tech:
        logger.warning("Technician login rejected for %s", payload.technician_id)
        raise HTTPException(status_code=401, detail="invalid technician id or password")
    set_session_cookie(response, make_session(ROLE_TECHNICIAN, tech["id"]), settings.session_max_age)
    tech.pop("password", None)
    return {"ok": True, "role": ROLE_TECHNICIAN, "item": tech}


@router.post("/portal/logout")
def portal_logout(response: Response):
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/portal/me")
def portal_me(ledger: Ledger = Depends(get_ledger), user: CurrentUser = Depends(get_technician_user)):
    tech = ledger.get_technician(user.subject) or {}
    tech.pop("password", None)
    return {"ok": True, "item": tech}


@router.get("/portal/work-orders")
def portal_list_work_orders(
    status: str = Query(""),
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_technician_user),
):
    return {"ok": True, "items": ledger.list_work_orders(status=status, technician_id=user.subject)}


@router.get("/portal/work-orders/{work_order_id}")
def portal_get_work_order(
    work_order_id: str,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_technician_user),
):
    item = ledger.get_work_order(work_order_id)
    if not item or item["technician_id"] != user.subject:
        raise HTTPException(status_code=404, detail="work order not found")
    return {"ok": True, "item": item, "asset": ledger.get_asset(item["asset_id"])}


@router.post("/portal/work-orders/{work_order_id}/status")
def portal_set_work_order_status(
    work_order_id: str,
    payload: WorkOrderStatusIn,
    ledger: Ledger = Depends(get_ledger),
    user: CurrentUser = Depends(get_technician_user),
):
    item = ledger.get_work_order(work_order_id)
    if not item or item["technician_id"] != user.subject:
        raise HTTPException(status_code=404, detail="work order not found")
    try:
        out = ledger.update_work_order_status(work_order_id, payload.status, payload.note, payload.evidence)
    except ValueError as e:
        raise HTTPException(status_code=404 if "not found" in str(e) else 400, detail=str(e)) from e
    return out.as_dict()
