"""
KeyValueRepository for database operations on KeyValueRecord model
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from database_models import KeyValueRecord


class KeyValueRepository:
    """
    Repository class for KeyValueRecord database operations.
    Encapsulates all database logic for the persisted auth records.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_value(self, key: str) -> Optional[str]:
        """
        Retrieve the raw string stored under a key.

        Returns:
            Stored string if found, None otherwise
        """
        result = await self.db.execute(
            select(KeyValueRecord).where(KeyValueRecord.key == key)
        )
        record = result.scalar_one_or_none()
        return record.value if record else None

    async def set_value(self, key: str, value: str) -> KeyValueRecord:
        """
        Insert or overwrite the record stored under a key.
        """
        result = await self.db.execute(
            select(KeyValueRecord).where(KeyValueRecord.key == key)
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = KeyValueRecord(key=key, value=value)
            self.db.add(record)
        else:
            record.value = value
        await self.db.flush()
        return record

    async def delete_keys(self, keys: List[str]) -> None:
        """Delete every record whose key is in keys"""
        if not keys:
            return
        await self.db.execute(
            delete(KeyValueRecord).where(KeyValueRecord.key.in_(keys))
        )
        await self.db.flush()
