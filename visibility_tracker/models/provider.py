from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from visibility_tracker.db.base import Base


class Provider(Base):
    """A third-party AI system that prompts are dispatched to."""

    __tablename__ = "providers"
    __table_args__ = (CheckConstraint("weight > 0", name="ck_provider_weight_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)  # openai | gemini | perplexity ...
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    weight: Mapped[int] = mapped_column(Integer, default=1)  # relative share of a brand's prompts
    prompts_per_brand: Mapped[int] = mapped_column(Integer, default=10)  # operator quota, not read by batches
    api_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {"api_key": ..., "model": ...}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )
