# mpbot/storage/sql.py
import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mpbot.errors import StorageError
from mpbot.models import LicenseHistoryRow, LicenseRow, ObservationRow, TargetRow
from mpbot.schemas import License, LicenseHistoryEntry, Observation, Target
from mpbot.storage.base import Store

log = logging.getLogger("mpbot.storage")


def _target(row: TargetRow) -> Target:
    return Target(
        key=row.key,
        theta_deg=row.theta_deg,
        phi_deg=row.phi_deg,
        tolerance=row.tolerance,
        updated_at=row.updated_at,
    )


def _observation(row: ObservationRow) -> Observation:
    return Observation(key=row.key, theta_deg=row.theta_deg, phi_deg=row.phi_deg, timestamp=row.ts)


def _license(row: LicenseRow) -> License:
    return License(
        key=row.key,
        plan=row.plan,
        uids=list(row.uids or []),
        expires_at=row.expires_at,
        max_devices=row.max_devices,
        active=row.active,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def _history(row: LicenseHistoryRow) -> LicenseHistoryEntry:
    return LicenseHistoryEntry(
        key=row.key,
        action=row.action,
        from_uid=row.from_uid,
        to_uid=row.to_uid,
        info=row.info,
        timestamp=row.ts,
    )


def _history_row(entry: LicenseHistoryEntry) -> LicenseHistoryRow:
    return LicenseHistoryRow(
        key=entry.key,
        action=entry.action,
        from_uid=entry.from_uid,
        to_uid=entry.to_uid,
        info=entry.info,
        ts=entry.timestamp,
    )


class SqlStore(Store):
    """Store backed by any SQLAlchemy database (SQLite by default)."""

    def __init__(self, session_factory, engine=None):
        self._factory = session_factory
        self._engine = engine

    @contextmanager
    def _session(self):
        db = self._factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log.error("database error: %s", exc)
            raise StorageError(str(exc)) from exc
        finally:
            db.close()

    # ---------------------------
    # Targets
    def get_target(self, key):
        with self._session() as db:
            row = db.get(TargetRow, key)
            return _target(row) if row else None

    def save_target(self, target):
        with self._session() as db:
            row = db.get(TargetRow, target.key)
            if row is None:
                row = TargetRow(key=target.key)
                db.add(row)
            row.theta_deg = target.theta_deg
            row.phi_deg = target.phi_deg
            row.tolerance = target.tolerance
            row.updated_at = target.updated_at
        return target

    def list_targets(self):
        with self._session() as db:
            rows = db.query(TargetRow).order_by(TargetRow.updated_at.desc(), TargetRow.key).all()
            return [_target(r) for r in rows]

    def delete_target(self, key):
        with self._session() as db:
            n = db.query(TargetRow).filter(TargetRow.key == key).delete(synchronize_session=False)
        return n > 0

    # ---------------------------
    # Observations
    def add_observation(self, obs):
        with self._session() as db:
            db.add(ObservationRow(key=obs.key, theta_deg=obs.theta_deg, phi_deg=obs.phi_deg, ts=obs.timestamp))
        return obs

    def recent_observations(self, key, limit):
        with self._session() as db:
            rows = (
                db.query(ObservationRow)
                .filter(ObservationRow.key == key)
                .order_by(ObservationRow.ts.desc(), ObservationRow.id.desc())
                .limit(limit)
                .all()
            )
            return [_observation(r) for r in rows]

    def prune_observations(self, key, keep):
        with self._session() as db:
            doomed = [
                r.id
                for r in db.query(ObservationRow.id)
                .filter(ObservationRow.key == key)
                .order_by(ObservationRow.ts.desc(), ObservationRow.id.desc())
                .offset(keep)
                .all()
            ]
            if not doomed:
                return 0
            # ids, not a cutoff: a row inserted meanwhile is left for the next pass
            db.query(ObservationRow).filter(ObservationRow.id.in_(doomed)).delete(synchronize_session=False)
        return len(doomed)

    def delete_observations(self, key):
        with self._session() as db:
            return db.query(ObservationRow).filter(ObservationRow.key == key).delete(synchronize_session=False)

    # ---------------------------
    # Licenses
    def get_license(self, key):
        with self._session() as db:
            row = db.get(LicenseRow, key)
            return _license(row) if row else None

    def find_license_by_uid(self, uid, include_inactive=False):
        with self._session() as db:
            q = db.query(LicenseRow)
            if not include_inactive:
                q = q.filter(LicenseRow.active.is_(True))
            # uids is a JSON list; membership is checked here to stay portable
            for row in q.order_by(LicenseRow.created_at, LicenseRow.key).all():
                if uid in (row.uids or []):
                    return _license(row)
        return None

    def insert_license(self, lic, history):
        try:
            with self._session() as db:
                if db.get(LicenseRow, lic.key) is not None:
                    return False
                db.add(
                    LicenseRow(
                        key=lic.key,
                        plan=lic.plan,
                        uids=list(lic.uids),
                        expires_at=lic.expires_at,
                        max_devices=lic.max_devices,
                        active=lic.active,
                        created_at=lic.created_at,
                        updated_at=lic.updated_at,
                        version=lic.version,
                    )
                )
                db.add(_history_row(history))
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                return False
            raise
        return True

    def update_license(self, lic, expected_version, history=None):
        with self._session() as db:
            n = (
                db.query(LicenseRow)
                .filter(LicenseRow.key == lic.key, LicenseRow.version == expected_version)
                .update(
                    {
                        LicenseRow.plan: lic.plan,
                        LicenseRow.uids: list(lic.uids),
                        LicenseRow.expires_at: lic.expires_at,
                        LicenseRow.max_devices: lic.max_devices,
                        LicenseRow.active: lic.active,
                        LicenseRow.updated_at: lic.updated_at,
                        LicenseRow.version: expected_version + 1,
                    },
                    synchronize_session=False,
                )
            )
            if n != 1:
                return False
            if history is not None:
                db.add(_history_row(history))
        return True

    def list_licenses(self):
        with self._session() as db:
            rows = db.query(LicenseRow).order_by(LicenseRow.created_at.desc(), LicenseRow.key).all()
            return [_license(r) for r in rows]

    def add_history(self, entry):
        with self._session() as db:
            db.add(_history_row(entry))

    def list_history(self, key, limit):
        with self._session() as db:
            rows = (
                db.query(LicenseHistoryRow)
                .filter(LicenseHistoryRow.key == key)
                .order_by(LicenseHistoryRow.id.desc())
                .limit(limit)
                .all()
            )
            return [_history(r) for r in rows]

    def close(self):
        if self._engine is not None:
            self._engine.dispose()
