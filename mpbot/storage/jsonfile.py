# mpbot/storage/jsonfile.py
# Flat-file store: the whole document is rewritten on every write
# (temp file + rename), so readers never see a half-written file.
import json
import logging
import os
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List
from uuid import uuid4

from mpbot.errors import StorageError
from mpbot.schemas import License, LicenseHistoryEntry, Observation, Target
from mpbot.storage.base import Store
from mpbot.utils.timeutil import parse_epoch_ms

log = logging.getLogger("mpbot.storage")


def _empty() -> Dict[str, Any]:
    return {"targets": {}, "observations": {}, "licenses": {}, "history": {}, "seq": 0}


def _coerce_times(row: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    # older files carry ISO strings
    for f in fields:
        if f in row:
            row[f] = parse_epoch_ms(row[f])
    return row


class JsonFileStore(Store):
    """Whole-file JSON store for a single process.

    The lock and the version compare-and-set both work on this process's
    in-memory copy, so two processes sharing one file (several uvicorn
    workers, or the CLI next to a running server) can overwrite each
    other's writes. Run one worker, or use the SQL backend.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()
        self._lock = RLock()
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        data = _empty()
        data.update({k: v for k, v in raw.items() if k in data})
        for t in data["targets"].values():
            _coerce_times(t, "updated_at")
        for lic in data["licenses"].values():
            _coerce_times(lic, "created_at", "updated_at", "expires_at")
            # single-device files stored a bare uid
            if "uids" not in lic:
                uid = lic.pop("uid", None)
                lic["uids"] = [uid] if uid else []
        for rows in data["history"].values():
            for h in rows:
                _coerce_times(h, "timestamp")
        return data

    def _flush(self) -> None:
        tmp = self.path.with_name(self.path.name + f".tmp.{os.getpid()}.{uuid4().hex[:6]}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            log.error("writing %s failed: %s", self.path, exc)
            # rehydrate so the cache matches what is on disk
            self._data = self._load()
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    def _next_seq(self) -> int:
        self._data["seq"] += 1
        return self._data["seq"]

    # ---------------------------
    # Targets
    def get_target(self, key):
        with self._lock:
            row = self._data["targets"].get(key)
            return Target.model_validate(row) if row else None

    def save_target(self, target):
        with self._lock:
            self._data["targets"][target.key] = target.model_dump()
            self._flush()
        return target

    def list_targets(self):
        with self._lock:
            rows = [Target.model_validate(r) for r in self._data["targets"].values()]
        rows.sort(key=lambda t: t.key)
        rows.sort(key=lambda t: t.updated_at or 0, reverse=True)
        return rows

    def delete_target(self, key):
        with self._lock:
            existed = self._data["targets"].pop(key, None) is not None
            if existed:
                self._flush()
        return existed

    # ---------------------------
    # Observations
    def add_observation(self, obs):
        with self._lock:
            row = obs.model_dump()
            row["seq"] = self._next_seq()
            self._data["observations"].setdefault(obs.key, []).append(row)
            self._flush()
        return obs

    def _ordered(self, key: str) -> List[Dict[str, Any]]:
        rows = self._data["observations"].get(key, [])
        return sorted(rows, key=lambda r: (r["timestamp"], r.get("seq", 0)), reverse=True)

    def recent_observations(self, key, limit):
        with self._lock:
            return [Observation.model_validate(r) for r in self._ordered(key)[:limit]]

    def prune_observations(self, key, keep):
        with self._lock:
            ordered = self._ordered(key)
            if len(ordered) <= keep:
                return 0
            kept = ordered[:keep]
            kept.reverse()
            self._data["observations"][key] = kept
            self._flush()
            return len(ordered) - keep

    def delete_observations(self, key):
        with self._lock:
            rows = self._data["observations"].pop(key, [])
            if rows:
                self._flush()
            return len(rows)

    # ---------------------------
    # Licenses
    def get_license(self, key):
        with self._lock:
            row = self._data["licenses"].get(key)
            return License.model_validate(row) if row else None

    def find_license_by_uid(self, uid, include_inactive=False):
        with self._lock:
            candidates = [License.model_validate(r) for r in self._data["licenses"].values()]
        candidates.sort(key=lambda lic: (lic.created_at or 0, lic.key))
        for lic in candidates:
            if uid in lic.uids and (include_inactive or lic.active):
                return lic
        return None

    def _history_row(self, entry: LicenseHistoryEntry) -> Dict[str, Any]:
        row = entry.model_dump()
        row["seq"] = self._next_seq()
        return row

    def insert_license(self, lic, history):
        with self._lock:
            if lic.key in self._data["licenses"]:
                return False
            self._data["licenses"][lic.key] = lic.model_dump(exclude={"uid"})
            self._data["history"].setdefault(lic.key, []).append(self._history_row(history))
            self._flush()
        return True

    def update_license(self, lic, expected_version, history=None):
        with self._lock:
            current = self._data["licenses"].get(lic.key)
            if current is None or current.get("version", 0) != expected_version:
                return False
            row = lic.model_dump(exclude={"uid"})
            row["created_at"] = current.get("created_at")
            row["version"] = expected_version + 1
            self._data["licenses"][lic.key] = row
            if history is not None:
                self._data["history"].setdefault(lic.key, []).append(self._history_row(history))
            self._flush()
        return True

    def list_licenses(self):
        with self._lock:
            rows = [License.model_validate(r) for r in self._data["licenses"].values()]
        rows.sort(key=lambda lic: lic.key)
        rows.sort(key=lambda lic: lic.created_at or 0, reverse=True)
        return rows

    def add_history(self, entry):
        with self._lock:
            self._data["history"].setdefault(entry.key, []).append(self._history_row(entry))
            self._flush()

    def list_history(self, key, limit):
        with self._lock:
            rows = sorted(self._data["history"].get(key, []), key=lambda r: r.get("seq", 0), reverse=True)
            return [LicenseHistoryEntry.model_validate(r) for r in rows[:limit]]
