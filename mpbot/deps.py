# mpbot/deps.py
# Shared dependencies for the routers; services live on app.state.
from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from mpbot.config import Settings
from mpbot.services import LicenseService, TargetService
from mpbot.utils.crypto import tokens_match


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_targets(request: Request) -> TargetService:
    return request.app.state.targets


def get_licenses(request: Request) -> LicenseService:
    return request.app.state.licenses


def verify_admin(
    request: Request,
    x_admin_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
):
    if not tokens_match(request.app.state.settings.admin_token, x_admin_token or token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def is_admin(request: Request) -> bool:
    supplied = request.headers.get("x-admin-token") or request.query_params.get("token")
    return tokens_match(request.app.state.settings.admin_token, supplied)


def conflict_response(conflict) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"ok": False, "status": conflict.reason, "key": conflict.key},
    )
