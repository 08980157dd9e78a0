from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from visibility_tracker.db.base import Base


class CompetitiveStat(Base):
    """Append-only visibility snapshot for one entity of a brand.

    The newest row per (entity, provider scope) is the current state; the one
    before it is the trend baseline.
    """

    __tablename__ = "brand_competitive_stats"
    __table_args__ = (
        Index(
            "ix_competitive_stats_entity_time",
            "brand_id",
            "entity_type",
            "competitor_id",
            "provider_id",
            "analyzed_at",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    competitor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True
    )
    provider_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True
    )  # NULL = all providers
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    visibility: Mapped[float] = mapped_column(Float, nullable=False)  # 0-100, 2 dp
    sentiment: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0-100
    position: Mapped[float | None] = mapped_column(Float, nullable=True)  # 1 dp, lower is better
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    window_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    window_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    analysis_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
