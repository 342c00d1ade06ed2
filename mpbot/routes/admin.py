# mpbot/routes/admin.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mpbot.deps import conflict_response, get_licenses, get_targets, verify_admin
from mpbot.schemas import (
    BindRequest,
    Conflict,
    License,
    LicenseHistoryEntry,
    LicenseStatus,
    LicenseUpsert,
    Observation,
    ReleaseRequest,
    RenewRequest,
    Target,
    TargetUpdate,
    TransferRequest,
)
from mpbot.services import LicenseService, TargetService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(verify_admin)])


def _license_or_conflict(result):
    if isinstance(result, Conflict):
        return conflict_response(result)
    return result


# ---------------------------
# Targets
@router.get("/targets", response_model=List[Target])
def list_targets(targets: TargetService = Depends(get_targets)):
    return targets.list_challenges()


@router.get("/targets/{key}", response_model=Target)
def get_target(key: str, targets: TargetService = Depends(get_targets)):
    return targets.get_target(key)


@router.put("/targets/{key}", response_model=Target)
def set_target(key: str, req: TargetUpdate, targets: TargetService = Depends(get_targets)):
    return targets.set_target(key, req.theta_deg, req.phi_deg, req.tolerance)


@router.delete("/targets/{key}")
def delete_key(key: str, targets: TargetService = Depends(get_targets)):
    return {"ok": True, "deleted": targets.delete_key(key)}


@router.get("/targets/{key}/observations", response_model=List[Observation])
def list_observations(key: str, limit: int = Query(200, ge=1), targets: TargetService = Depends(get_targets)):
    return targets.list_observations(key, limit)


@router.post("/targets/{key}/prune")
def prune_observations(key: str, keep: int = Query(200, ge=1), targets: TargetService = Depends(get_targets)):
    return {"ok": True, "deleted": targets.prune_observations(key, keep)}


@router.post("/targets/{key}/recompute", response_model=Target)
def recompute(key: str, limit: int = Query(200, ge=1), targets: TargetService = Depends(get_targets)):
    return targets.recompute_target(key, limit)


@router.post("/targets/{key}/compact", response_model=Target)
def compact(key: str, keep: int = Query(200, ge=1), targets: TargetService = Depends(get_targets)):
    return targets.compact_key(key, keep)


# ---------------------------
# Licenses
@router.get("/licenses", response_model=List[License])
def list_licenses(licenses: LicenseService = Depends(get_licenses)):
    return licenses.list_licenses()


@router.post("/licenses", response_model=License)
def upsert_license(req: LicenseUpsert, licenses: LicenseService = Depends(get_licenses)):
    return _license_or_conflict(licenses.upsert_license(req))


@router.get("/licenses/{key}", response_model=License)
def get_license(key: str, licenses: LicenseService = Depends(get_licenses)):
    lic = licenses.get_license_by_key(key)
    if lic is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="License not found")
    return lic


@router.post("/licenses/{key}/bind", response_model=License)
def bind(key: str, req: BindRequest, licenses: LicenseService = Depends(get_licenses)):
    return _license_or_conflict(licenses.set_license_target_uid(key, req.uid))


@router.post("/licenses/{key}/transfer", response_model=License)
def transfer(key: str, req: TransferRequest, licenses: LicenseService = Depends(get_licenses)):
    return _license_or_conflict(licenses.transfer_license(key, req.from_uid, req.to_uid))


@router.post("/licenses/{key}/release", response_model=License)
def release(key: str, req: Optional[ReleaseRequest] = None, licenses: LicenseService = Depends(get_licenses)):
    return licenses.release_license(key, req.uid if req else None)


@router.post("/licenses/{key}/activate", response_model=License)
def activate(key: str, licenses: LicenseService = Depends(get_licenses)):
    return licenses.activate_license(key)


@router.post("/licenses/{key}/deactivate", response_model=License)
def deactivate(key: str, licenses: LicenseService = Depends(get_licenses)):
    return licenses.deactivate_license(key)


@router.post("/licenses/{key}/renew", response_model=License)
def renew(key: str, req: RenewRequest, licenses: LicenseService = Depends(get_licenses)):
    return licenses.renew_license(key, req.expires_at)


@router.get("/licenses/{key}/history", response_model=List[LicenseHistoryEntry])
def history(key: str, limit: int = Query(100, ge=1), licenses: LicenseService = Depends(get_licenses)):
    return licenses.list_license_history(key, limit)


@router.get("/check/{uid}", response_model=LicenseStatus)
def check(uid: str, licenses: LicenseService = Depends(get_licenses)):
    return licenses.check_license(uid)
