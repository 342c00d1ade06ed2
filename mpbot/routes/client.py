# mpbot/routes/client.py
# Endpoints the browser extension's popup and background script call.
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from mpbot.config import Settings
from mpbot.deps import get_settings
from mpbot.schemas import StatEvent

log = logging.getLogger("mpbot.stats")

router = APIRouter(tags=["client"])


@router.get("/aloha/{uid}")
def aloha(uid: str, settings: Settings = Depends(get_settings)):
    # popup style for this device
    return {"ok": True, "name": settings.ui_bundle}


@router.post("/stat")
def stat(payload: Optional[StatEvent] = None):
    if payload is not None:
        log.info("stat uid=%s status=%s event=%s meta=%s", payload.uid, payload.status, payload.event, payload.meta)
    return {"ok": True}
