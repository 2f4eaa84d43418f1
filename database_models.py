from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime
from database import Base


class KeyValueRecord(Base):
    """
    String-serialized record keyed by storage key.
    Backs the persistence gateway's native store.
    """
    __tablename__ = "key_value_records"

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
