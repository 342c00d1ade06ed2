# mpbot/storage/base.py
import abc
from typing import List, Optional

from mpbot.schemas import License, LicenseHistoryEntry, Observation, Target


class Store(abc.ABC):
    """Durable rows for targets, observations, licenses and license history.

    Implementations must make each call atomic on its own. License writes
    carry their history entry so both land together or not at all.
    """

    # ---------------------------
    # Targets
    @abc.abstractmethod
    def get_target(self, key: str) -> Optional[Target]: ...

    @abc.abstractmethod
    def save_target(self, target: Target) -> Target: ...

    @abc.abstractmethod
    def list_targets(self) -> List[Target]:
        """All targets, most recently updated first."""

    @abc.abstractmethod
    def delete_target(self, key: str) -> bool: ...

    # ---------------------------
    # Observations
    @abc.abstractmethod
    def add_observation(self, obs: Observation) -> Observation: ...

    @abc.abstractmethod
    def recent_observations(self, key: str, limit: int) -> List[Observation]:
        """Up to ``limit`` observations, newest first (ties: last inserted first)."""

    @abc.abstractmethod
    def prune_observations(self, key: str, keep: int) -> int:
        """Drop all but the ``keep`` newest observations; return how many went."""

    @abc.abstractmethod
    def delete_observations(self, key: str) -> int: ...

    # ---------------------------
    # Licenses
    @abc.abstractmethod
    def get_license(self, key: str) -> Optional[License]: ...

    @abc.abstractmethod
    def find_license_by_uid(self, uid: str, include_inactive: bool = False) -> Optional[License]: ...

    @abc.abstractmethod
    def insert_license(self, lic: License, history: LicenseHistoryEntry) -> bool:
        """Create ``lic``; False when the key already exists."""

    @abc.abstractmethod
    def update_license(
        self, lic: License, expected_version: int, history: Optional[LicenseHistoryEntry] = None
    ) -> bool:
        """Replace the row if its version is still ``expected_version``.

        The stored version becomes ``expected_version + 1``. Returns False
        when another writer got there first (or the row vanished).
        """

    @abc.abstractmethod
    def list_licenses(self) -> List[License]:
        """All licenses, newest created first."""

    @abc.abstractmethod
    def add_history(self, entry: LicenseHistoryEntry) -> None: ...

    @abc.abstractmethod
    def list_history(self, key: str, limit: int) -> List[LicenseHistoryEntry]:
        """Newest first."""

    def close(self) -> None:
        pass
