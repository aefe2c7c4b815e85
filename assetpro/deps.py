from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from .auth import ROLE_ADMIN, ROLE_TECHNICIAN, read_session
from .config import Settings
from .ledger import Ledger
from .monitor import ConnectionMonitor


@dataclass
class CurrentUser:
    role: str
    subject: str


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_monitor(request: Request) -> ConnectionMonitor:
    return request.app.state.monitor


def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> CurrentUser:
    s = read_session(request, settings.session_max_age)
    if not s:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
    return CurrentUser(role=str(s.get("r") or ""), subject=str(s.get("u") or ""))


def get_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin only")
    return user


def get_technician_user(
    user: CurrentUser = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
) -> CurrentUser:
    if user.role != ROLE_TECHNICIAN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="technician only")
    if ledger.get_technician(user.subject) is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="technician no longer registered")
    return user
