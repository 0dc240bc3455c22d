"""Store entries: durable key/value namespace.

One row per logical key ("settings", "custom-models", ...).
Values are opaque serialized payloads; the store never inspects them.
"""
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class StoreEntry(TimestampMixin, Base):
    __tablename__ = "app_store"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text, default="")

    def __repr__(self) -> str:
        return f"<StoreEntry {self.key} ({len(self.value or '')} chars)>"
