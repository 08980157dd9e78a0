from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from visibility_tracker.db.base import Base

ENTITY_BRAND = "brand"
ENTITY_COMPETITOR = "competitor"


class Mention(Base):
    """One entity's occurrences in one AI response. Rows are never updated."""

    __tablename__ = "brand_mentions"
    __table_args__ = (Index("ix_brand_mentions_brand_analyzed", "brand_id", "analyzed_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_prompt_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("brand_prompts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    brand_id: Mapped[int] = mapped_column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    provider_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    competitor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True
    )
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mention_count: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = first entity in the response
    context: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0-100
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
