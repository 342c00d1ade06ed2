# mpbot/routes/challenge.py
from fastapi import APIRouter, Depends, Query, Response

from mpbot.config import Settings
from mpbot.deps import get_settings, get_targets
from mpbot.schemas import ChallengeOut, ObserveRequest, ObserveResponse
from mpbot.services import TargetService

router = APIRouter(tags=["challenge"])


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/challenge", response_model=ChallengeOut)
def challenge(response: Response, key: str = Query("default", min_length=1), targets: TargetService = Depends(get_targets)):
    response.headers["Cache-Control"] = "no-store"
    return ChallengeOut.from_target(targets.get_target(key))


@router.post("/observe", response_model=ObserveResponse)
def observe(
    req: ObserveRequest,
    targets: TargetService = Depends(get_targets),
    settings: Settings = Depends(get_settings),
):
    obs = targets.save_observation(req.key, req.theta_deg, req.phi_deg)
    target = targets.recompute_target(req.key) if settings.recompute_on_observe else None
    return ObserveResponse(observation=obs, target=target)
