"""Storage ORM model: one versioned JSON payload per key."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from leavecore.database import Base


class StoreRecord(Base):
    __tablename__ = "leave_store_records"

    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    # Key prefix ("balance", "request") for operational queries
    namespace: Mapped[str] = mapped_column(sa.String(50), nullable=False, index=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    payload: Mapped[dict] = mapped_column(sa.JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    def __repr__(self) -> str:
        return f"<StoreRecord {self.key} v{self.version}>"
