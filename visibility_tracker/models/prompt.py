from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility_tracker.db.base import Base

PROMPT_SUGGESTED = "suggested"
PROMPT_ACTIVE = "active"
PROMPT_INACTIVE = "inactive"

STATE_PENDING = "pending"
STATE_COMPLETED = "completed"
STATE_FAILED = "failed"


class BrandPrompt(Base):
    """A natural-language prompt tracked for one brand, with its latest analysis result."""

    __tablename__ = "brand_prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=PROMPT_SUGGESTED, index=True)

    # Analysis state: at most one of these is set at any time
    analysis_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    analysis_failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    analysis_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Result fields (overwritten by each successful analysis)
    sentiment: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0-100
    position: Mapped[float | None] = mapped_column(Float, nullable=True)
    visibility: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0-100
    volume: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitor_sentiments: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {"Globex": 64}
    provider_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    brand: Mapped["Brand"] = relationship("Brand", back_populates="prompts")  # noqa: F821
    resources: Mapped[list["PromptResource"]] = relationship(
        "PromptResource", back_populates="brand_prompt", cascade="all, delete-orphan"
    )

    @property
    def analysis_state(self) -> str:
        if self.analysis_completed_at is not None:
            return STATE_COMPLETED
        if self.analysis_failed_at is not None:
            return STATE_FAILED
        return STATE_PENDING


class PromptResource(Base):
    """A URL or citation found in a prompt's latest AI response."""

    __tablename__ = "brand_prompt_resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_prompt_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("brand_prompts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), default="")
    anchor_text: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_competitor: Mapped[bool] = mapped_column(Boolean, default=False)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    brand_prompt: Mapped["BrandPrompt"] = relationship("BrandPrompt", back_populates="resources")
