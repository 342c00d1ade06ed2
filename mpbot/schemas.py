# mpbot/schemas.py
# Domain records and wire models. Fields are snake_case in Python and
# camelCase on the wire; timestamps are epoch milliseconds.
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from mpbot.utils.timeutil import parse_epoch_ms

# strict: reject numeric strings and booleans, accept ints
Angle = Annotated[float, Field(strict=True, allow_inf_nan=False)]

# License history actions
CREATE = "create"
UPSERT = "upsert"
BIND = "bind"
TRANSFER = "transfer"
RELEASE = "release"
ACTIVATE = "activate"
DEACTIVATE = "deactivate"
RENEW = "renew"

BOUND_TO_OTHER = "bound-to-other"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------
# Targets / observations
class Target(CamelModel):
    key: str
    theta_deg: float
    phi_deg: float
    tolerance: float
    updated_at: Optional[int] = None


class Observation(CamelModel):
    key: str
    theta_deg: float
    phi_deg: float
    timestamp: int


class TargetAngles(CamelModel):
    theta_deg: float
    phi_deg: float


class ChallengeOut(CamelModel):
    key: str
    target: TargetAngles
    tolerance: float

    @classmethod
    def from_target(cls, target: Target) -> "ChallengeOut":
        return cls(
            key=target.key,
            target=TargetAngles(theta_deg=target.theta_deg, phi_deg=target.phi_deg),
            tolerance=target.tolerance,
        )


class ObserveRequest(CamelModel):
    key: str = Field(min_length=1)
    theta_deg: Angle
    phi_deg: Angle


class ObserveResponse(CamelModel):
    ok: bool = True
    observation: Observation
    target: Optional[Target] = None


class TargetUpdate(CamelModel):
    theta_deg: Angle
    phi_deg: Angle
    tolerance: Optional[Annotated[float, Field(gt=0, le=180)]] = None


# ---------------------------
# Licenses
class License(CamelModel):
    key: str
    plan: str = "pro"
    uids: List[str] = Field(default_factory=list)
    expires_at: Optional[int] = None
    max_devices: int = 1
    active: bool = True
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    version: int = 0

    @computed_field
    @property
    def uid(self) -> Optional[str]:
        return self.uids[0] if self.uids else None


class LicenseHistoryEntry(CamelModel):
    key: str
    action: str
    from_uid: Optional[str] = None
    to_uid: Optional[str] = None
    info: Optional[str] = None
    timestamp: int


class Conflict(CamelModel):
    """Recoverable outcome: the license is claimed by other device(s)."""

    reason: str = BOUND_TO_OTHER
    key: str
    uids: List[str] = Field(default_factory=list)


class LicenseStatus(CamelModel):
    ok: bool
    status: str
    plan: Optional[str] = None
    key: Optional[str] = None
    expires_at: Optional[int] = None


class LicenseUpsert(CamelModel):
    key: str = Field(min_length=1)
    plan: str = "pro"
    expires_at: Optional[int] = None
    max_devices: int = Field(default=1, ge=1)
    active: bool = True
    uid: Optional[str] = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def coerce_expiry(cls, value: Any) -> Optional[int]:
        # bad dates fail open to "never expires"
        return parse_epoch_ms(value)


class BindRequest(CamelModel):
    uid: str = Field(min_length=1)


class TransferRequest(CamelModel):
    from_uid: Optional[str] = None
    to_uid: str = Field(min_length=1)


class ReleaseRequest(CamelModel):
    uid: Optional[str] = None


class RenewRequest(CamelModel):
    expires_at: Optional[int] = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def coerce_expiry(cls, value: Any) -> Optional[int]:
        return parse_epoch_ms(value)


class KeyReport(CamelModel):
    ok: bool = True
    key: str
    plan: str
    uid: Optional[str] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_license(cls, lic: License, uid: Optional[str] = None) -> "KeyReport":
        return cls(key=lic.key, plan=lic.plan, uid=uid, expires_at=lic.expires_at)


class StatEvent(BaseModel):
    uid: Optional[str] = None
    status: Optional[str] = None
    event: Optional[str] = None
    meta: Optional[Any] = None
