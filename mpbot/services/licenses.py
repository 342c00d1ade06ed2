# mpbot/services/licenses.py
"""
License records bound to device ids.

A license holds up to ``max_devices`` bound uids (oldest first). Binding is
sticky: once a uid holds a seat it keeps it until the seat is transferred
or released. A request that would need a seat held by someone else yields
a ``Conflict`` result ("bound-to-other") instead of raising, so callers can
answer 403. Operations that need an existing key raise ``NotFoundError``.

Every mutation is read -> decide -> compare-and-set on the row version;
when two writers race, the loser re-reads and decides again, so only one of
two devices claiming the last seat can win.
"""

import logging
from typing import Callable, List, Optional, Tuple, Union

from mpbot.errors import NotFoundError, StorageError, ValidationError
from mpbot.schemas import (
    ACTIVATE,
    BIND,
    CREATE,
    DEACTIVATE,
    RELEASE,
    RENEW,
    TRANSFER,
    UPSERT,
    Conflict,
    License,
    LicenseHistoryEntry,
    LicenseStatus,
    LicenseUpsert,
)
from mpbot.storage.base import Store
from mpbot.utils.angles import clamp
from mpbot.utils.timeutil import now_ms

log = logging.getLogger("mpbot.licenses")

MAX_RETRIES = 5
MUTABLE_FIELDS = ("plan", "expires_at", "max_devices", "active")

# a decision is either a conflict, "nothing to do" (None), or the new
# license state with the history entry that records it
Decision = Union[Conflict, None, Tuple[License, LicenseHistoryEntry]]


def _require(value, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} required")
    return value.strip()


def _optional_uid(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("uid must be a string")
    return value.strip() or None


class LicenseService:
    def __init__(self, store: Store, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    def _entry(self, key, action, from_uid=None, to_uid=None, info=None) -> LicenseHistoryEntry:
        return LicenseHistoryEntry(
            key=key, action=action, from_uid=from_uid, to_uid=to_uid, info=info, timestamp=self.clock()
        )

    def _changed(self, lic: License, **fields) -> License:
        fields["updated_at"] = self.clock()
        return lic.model_copy(update=fields)

    def _mutate(self, key: str, decide: Callable[[License], Decision]) -> Union[License, Conflict]:
        for _ in range(MAX_RETRIES):
            current = self.store.get_license(key)
            if current is None:
                raise NotFoundError(f"license {key} not found")
            decision = decide(current)
            if decision is None:
                return current
            if isinstance(decision, Conflict):
                log.info("license %s is bound to other device(s)", key)
                return decision
            updated, entry = decision
            if self.store.update_license(updated, current.version, entry):
                log.info("license %s: %s %s -> %s", key, entry.action, entry.from_uid, entry.to_uid)
                return updated.model_copy(update={"version": current.version + 1})
            log.debug("license %s changed underneath us, retrying", key)
        raise StorageError(f"license {key} kept changing, gave up after {MAX_RETRIES} attempts")

    # ---------------------------
    # Binding decisions (pure)
    def _decide_bind(self, lic: License, uid: str) -> Decision:
        if uid in lic.uids:
            return None
        if len(lic.uids) >= lic.max_devices:
            return Conflict(key=lic.key, uids=lic.uids)
        return self._changed(lic, uids=lic.uids + [uid]), self._entry(lic.key, BIND, to_uid=uid)

    def _decide_transfer(self, lic: License, from_uid: Optional[str], to_uid: str) -> Decision:
        if from_uid is not None and from_uid in lic.uids:
            if from_uid == to_uid:
                return None
            uids = [u for u in lic.uids if u != to_uid]
            uids[uids.index(from_uid)] = to_uid
            entry = self._entry(lic.key, TRANSFER, from_uid=from_uid, to_uid=to_uid)
            return self._changed(lic, uids=uids), entry
        if to_uid in lic.uids:
            # first-use on every poll is a no-op; a stale from_uid is not
            return None if from_uid is None else Conflict(key=lic.key, uids=lic.uids)
        if len(lic.uids) >= lic.max_devices:
            return Conflict(key=lic.key, uids=lic.uids)
        # a from_uid holding no seat still takes a free one, as older
        # clients send their own uid before the license was ever bound
        entry = self._entry(lic.key, TRANSFER, from_uid=from_uid, to_uid=to_uid)
        return self._changed(lic, uids=lic.uids + [to_uid]), entry

    # ---------------------------
    # Reads
    def get_license_by_key(self, key: str) -> Optional[License]:
        return self.store.get_license(_require(key, "key"))

    def get_license_by_uid(self, uid: str) -> Optional[License]:
        """Active license holding ``uid``; revoked devices resolve to nothing."""
        return self.store.find_license_by_uid(_require(uid, "uid"))

    def list_licenses(self) -> List[License]:
        return self.store.list_licenses()

    def list_license_history(self, key: str, limit: int = 100) -> List[LicenseHistoryEntry]:
        return self.store.list_history(_require(key, "key"), clamp(limit, 1, 1000))

    def check_license(self, uid: str) -> LicenseStatus:
        uid = _require(uid, "uid")
        # an active license wins over a revoked one still holding the uid;
        # inactive rows are only consulted so the caller learns why
        lic = self.store.find_license_by_uid(uid)
        if lic is None:
            lic = self.store.find_license_by_uid(uid, include_inactive=True)
        if lic is None:
            return LicenseStatus(ok=False, status="not_found")
        if not lic.active:
            return LicenseStatus(ok=False, status="inactive")
        if lic.expires_at is not None and self.clock() > lic.expires_at:
            return LicenseStatus(ok=False, status="expired", plan=lic.plan, expires_at=lic.expires_at)
        return LicenseStatus(ok=True, status="valid", plan=lic.plan, key=lic.key, expires_at=lic.expires_at)

    # ---------------------------
    # Mutations
    def upsert_license(self, req: LicenseUpsert) -> Union[License, Conflict]:
        key = _require(req.key, "key")
        uid = _optional_uid(req.uid)
        now = self.clock()
        fresh = License(
            key=key,
            plan=req.plan,
            expires_at=req.expires_at,
            max_devices=req.max_devices,
            active=req.active,
            created_at=now,
            updated_at=now,
        )
        if self.store.insert_license(fresh, self._entry(key, CREATE, info=req.plan)):
            log.info("created license %s (%s)", key, req.plan)
        else:
            fields = {name: getattr(req, name) for name in MUTABLE_FIELDS if name in req.model_fields_set}

            def decide(lic: License) -> Decision:
                return self._changed(lic, **fields), self._entry(key, UPSERT, info=",".join(sorted(fields)) or None)

            self._mutate(key, decide)
        if uid is not None:
            return self.set_license_target_uid(key, uid)
        return self.store.get_license(key)

    def set_license_target_uid(self, key: str, uid: str) -> Union[License, Conflict]:
        key = _require(key, "key")
        uid = _require(uid, "uid")
        return self._mutate(key, lambda lic: self._decide_bind(lic, uid))

    def transfer_license(self, key: str, from_uid: Optional[str], to_uid: str) -> Union[License, Conflict]:
        """Move a seat from ``from_uid`` to ``to_uid``.

        With ``from_uid`` None this is auto-bind-on-first-use: it only takes
        a free seat and never reassigns one. A ``from_uid`` that holds no
        seat is treated the same way, so a transfer onto a license with a
        free seat succeeds even when ``from_uid`` was never bound.
        """
        key = _require(key, "key")
        to_uid = _require(to_uid, "toUid")
        from_uid = _optional_uid(from_uid)
        return self._mutate(key, lambda lic: self._decide_transfer(lic, from_uid, to_uid))

    def release_license(self, key: str, uid: Optional[str] = None) -> License:
        key = _require(key, "key")
        uid = _optional_uid(uid)

        def decide(lic: License) -> Decision:
            if uid is None:
                if not lic.uids:
                    return None
                return self._changed(lic, uids=[]), self._entry(key, RELEASE, from_uid=",".join(lic.uids))
            if uid not in lic.uids:
                return None
            remaining = [u for u in lic.uids if u != uid]
            return self._changed(lic, uids=remaining), self._entry(key, RELEASE, from_uid=uid)

        return self._mutate(key, decide)

    def activate_license(self, key: str) -> License:
        key = _require(key, "key")
        return self._mutate(key, lambda lic: (self._changed(lic, active=True), self._entry(key, ACTIVATE)))

    def deactivate_license(self, key: str) -> License:
        key = _require(key, "key")
        return self._mutate(key, lambda lic: (self._changed(lic, active=False), self._entry(key, DEACTIVATE)))

    def renew_license(self, key: str, expires_at: Optional[int]) -> License:
        key = _require(key, "key")
        if expires_at is not None and (isinstance(expires_at, bool) or not isinstance(expires_at, int)):
            raise ValidationError("expiresAt must be epoch milliseconds")
        info = str(expires_at) if expires_at is not None else "never"
        return self._mutate(
            key, lambda lic: (self._changed(lic, expires_at=expires_at), self._entry(key, RENEW, info=info))
        )
