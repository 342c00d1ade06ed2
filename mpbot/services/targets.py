# mpbot/services/targets.py
"""
Rotation challenge targets and the observation log behind them.

A target is what a client has to match: ``theta`` (wrapped into [0, 360)),
``phi`` (stored as given) and a tolerance in degrees. Observations are
appended per key and can be folded back into the target with
``recompute_target``: phi is the arithmetic mean, theta the circular mean,
tolerance is never touched by a recompute.

Unknown keys are never an error on reads; the configured default target
is returned without writing anything.
"""

import logging
import math
from typing import Callable, List, Optional

from mpbot.errors import ValidationError
from mpbot.schemas import Observation, Target
from mpbot.storage.base import Store
from mpbot.utils.angles import circular_mean_deg, clamp, normalize_deg
from mpbot.utils.timeutil import now_ms

log = logging.getLogger("mpbot.targets")

MAX_WINDOW = 2000
DEFAULT_WINDOW = 200


def _as_angle(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite")
    return value


def _as_key(key) -> str:
    if not isinstance(key, str) or not key:
        raise ValidationError("key required")
    return key


class TargetService:
    def __init__(
        self,
        store: Store,
        default_theta: float = 270.0,
        default_phi: float = 90.0,
        default_tolerance: float = 10.0,
        max_observations: int = 5000,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.default_theta = normalize_deg(default_theta)
        self.default_phi = default_phi
        self.default_tolerance = default_tolerance
        self.max_observations = max_observations
        self.clock = clock

    def default_target(self, key: str) -> Target:
        return Target(
            key=key,
            theta_deg=self.default_theta,
            phi_deg=self.default_phi,
            tolerance=self.default_tolerance,
        )

    def get_target(self, key: str) -> Target:
        key = _as_key(key)
        return self.store.get_target(key) or self.default_target(key)

    def set_target(self, key: str, theta_deg, phi_deg, tolerance: Optional[float] = None) -> Target:
        key = _as_key(key)
        theta = _as_angle(theta_deg, "thetaDeg")
        phi = _as_angle(phi_deg, "phiDeg")
        if tolerance is None:
            tolerance = self.default_tolerance
        tolerance = _as_angle(tolerance, "tolerance")
        target = Target(
            key=key,
            theta_deg=normalize_deg(theta),
            phi_deg=phi,
            tolerance=tolerance,
            updated_at=self.clock(),
        )
        return self.store.save_target(target)

    def save_observation(self, key: str, theta_deg, phi_deg) -> Observation:
        key = _as_key(key)
        obs = Observation(
            key=key,
            theta_deg=normalize_deg(_as_angle(theta_deg, "thetaDeg")),
            phi_deg=_as_angle(phi_deg, "phiDeg"),
            timestamp=self.clock(),
        )
        self.store.add_observation(obs)
        dropped = self.store.prune_observations(key, self.max_observations)
        if dropped:
            log.debug("dropped %d old observations for %s", dropped, key)
        return obs

    def list_observations(self, key: str, limit: int = DEFAULT_WINDOW) -> List[Observation]:
        return self.store.recent_observations(_as_key(key), clamp(limit, 1, MAX_WINDOW))

    def recompute_target(self, key: str, limit: int = DEFAULT_WINDOW) -> Target:
        current = self.get_target(key)
        sample = self.list_observations(key, limit)
        if not sample:
            return current
        theta = circular_mean_deg(o.theta_deg for o in sample)
        phi = sum(o.phi_deg for o in sample) / len(sample)
        log.info("recomputed %s from %d observations: theta=%.2f phi=%.2f", key, len(sample), theta, phi)
        return self.set_target(key, theta, phi, current.tolerance)

    def list_challenges(self) -> List[Target]:
        return self.store.list_targets()

    def delete_key(self, key: str) -> bool:
        key = _as_key(key)
        had_target = self.store.delete_target(key)
        had_observations = self.store.delete_observations(key) > 0
        if had_target or had_observations:
            log.info("deleted key %s", key)
        return had_target or had_observations

    def prune_observations(self, key: str, keep: int = DEFAULT_WINDOW) -> int:
        return self.store.prune_observations(_as_key(key), clamp(keep, 1, MAX_WINDOW))

    def compact_key(self, key: str, keep: int = DEFAULT_WINDOW) -> Target:
        keep = clamp(keep, 1, MAX_WINDOW)
        dropped = self.prune_observations(key, keep)
        log.info("compacted %s: dropped %d observations", key, dropped)
        return self.recompute_target(key, keep)
