"""Base store interfaces."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class RemoteStoreError(Exception):
    """Raised when the remote row store cannot complete a request."""
    pass


class LocalStoreError(Exception):
    """Raised when the local key-value store cannot be read or written."""
    pass


class KeyValueStore(ABC):
    """Abstract string-keyed blob store on the device."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored text for a key, or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store text under a key, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Drop a key if present."""
        pass


class RowStore(ABC):
    """Abstract table service addressed by equality filters."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Row] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        columns: str = "*",
    ) -> List[Row]:
        """Return rows matching all filters, optionally ordered."""
        pass

    @abstractmethod
    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        """Insert one or more rows and return them as stored."""
        pass

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Row) -> List[Row]:
        """Apply values to rows matching filters and return them."""
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Row) -> List[Row]:
        """Delete rows matching filters and return them."""
        pass
