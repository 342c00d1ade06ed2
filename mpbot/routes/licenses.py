# mpbot/routes/licenses.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from mpbot.deps import conflict_response, get_licenses, is_admin
from mpbot.schemas import Conflict, KeyReport, LicenseStatus, LicenseUpsert
from mpbot.services import LicenseService

router = APIRouter(tags=["license"])


@router.post("/key", response_model=KeyReport)
def report_key(req: LicenseUpsert, request: Request, licenses: LicenseService = Depends(get_licenses)):
    """
    Clients report {key, uid}: the key is bound to uid on first use.
    With the admin token the body is a full upsert
    {key, plan, expiresAt, maxDevices, active, uid?}.
    """
    admin = is_admin(request)
    if admin:
        result = licenses.upsert_license(req)
    else:
        lic = licenses.get_license_by_key(req.key)
        if lic is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="License not found")
        result = licenses.transfer_license(req.key, None, req.uid) if req.uid else lic
    if isinstance(result, Conflict):
        return conflict_response(result)
    if admin:
        return KeyReport.from_license(result, req.uid or result.uid)
    # clients only hear back their own uid, never who holds the key
    return KeyReport.from_license(result, req.uid)


@router.get("/check/{uid}", response_model=LicenseStatus)
def check(uid: str, key: Optional[str] = Query(None), licenses: LicenseService = Depends(get_licenses)):
    # presenting a key binds it to this device on first use
    if key and licenses.get_license_by_key(key) is not None:
        result = licenses.transfer_license(key, None, uid)
        if isinstance(result, Conflict):
            return conflict_response(result)
    return licenses.check_license(uid)


@router.get("/transfer/{from_uid}")
@router.get("/tranfer/{from_uid}", include_in_schema=False)
def transfer(
    from_uid: str,
    to_uid: Optional[str] = Query(None, alias="toUid"),
    transfer_to: Optional[str] = Query(None, alias="transferTo"),
    tranfer_to: Optional[str] = Query(None, alias="tranferTo"),
    key: Optional[str] = Query(None),
    licenses: LicenseService = Depends(get_licenses),
):
    target_uid = to_uid or transfer_to or tranfer_to
    if not target_uid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="toUid required")
    if not key:
        lic = licenses.get_license_by_uid(from_uid)
        if lic is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="License not found")
        key = lic.key
    result = licenses.transfer_license(key, from_uid, target_uid)
    if isinstance(result, Conflict):
        return conflict_response(result)
    return {"ok": True, "fromUid": from_uid, "toUid": target_uid, "key": result.key, "plan": result.plan}
