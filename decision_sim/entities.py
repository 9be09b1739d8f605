# decision_sim/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()

# JSONB on Postgres, plain JSON everywhere else (local SQLite)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Simulation(Base):
    __tablename__ = "simulation"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    team_size: Mapped[int] = mapped_column(Integer, nullable=False)
    domain: Mapped[str] = mapped_column(Text, nullable=False)

    # {title, description, keyDecision}
    scenario: Mapped[dict[str, object]] = mapped_column(JsonDocument, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # [{role, content, createdAt}, ...] in turn order
    transcript: Mapped[list[dict[str, object]]] = mapped_column(
        JsonDocument,
        nullable=False,
        default=list,
    )

    analysis: Mapped[dict[str, object] | None] = mapped_column(JsonDocument, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_simulation_created_at", "created_at"),
    )
