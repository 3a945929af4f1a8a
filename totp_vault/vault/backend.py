"""Storage backend interface shared by the file and MongoDB backends."""
from abc import ABC, abstractmethod

from ..data import Snapshot, Vault


class StorageBackend(ABC):
    """Persistence of a Snapshot (user identifier → Vault)."""

    name: str = 'abstract'

    async def initialize(self) -> bool:
        """Prepare the backend; return False if it cannot be used."""
        return True

    @abstractmethod
    async def read(self) -> Snapshot:
        """Return every user's vault."""

    @abstractmethod
    async def write(self, snapshot: Snapshot) -> list[str]:
        """Persist every user in snapshot; return user ids that failed."""

    @abstractmethod
    async def read_user(self, user_id: str) -> Vault:
        """Return one user's vault (empty if the user has none)."""

    @abstractmethod
    async def write_user(self, user_id: str, vault: Vault) -> None:
        """Persist one user's vault without touching other users."""

    async def close(self) -> None:
        """Release backend resources."""
