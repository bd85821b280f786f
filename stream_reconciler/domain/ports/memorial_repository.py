"""Domain port for reading memorials."""

from abc import ABC, abstractmethod

from ..models.memorial import Memorial


class MemorialRepositoryPort(ABC):
    """Read access to the memorials collection."""

    @abstractmethod
    async def get(self, memorial_id: str) -> Memorial:
        """Load a memorial.

        Raises:
            MemorialNotFoundError: If no memorial has this id
        """
        pass
