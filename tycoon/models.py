"""Database models for save storage."""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class SaveSlot(Base):
    """One key-value save slot holding a serialized game state."""
    __tablename__ = 'save_slots'

    key = Column(String(64), primary_key=True)
    payload = Column(Text, nullable=False)  # JSON document
    version = Column(Integer, nullable=True, index=True)
    saved_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self):
        """Convert to dictionary."""
        return {
            'key': self.key,
            'version': self.version,
            'saved_at': self.saved_at.isoformat() if self.saved_at else None,
            'size': len(self.payload) if self.payload else 0,
        }
