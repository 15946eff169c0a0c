# backend/lineup_analytics/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, Enum, Numeric, Float, Integer, JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContestType(str, enum.Enum):
    GPP = "GPP"
    CASH = "CASH"
    SATELLITE = "SATELLITE"
    OTHER = "OTHER"


class LineupResult(Base):
    """
    One completed contest entry. Written by the contest settlement service;
    read-only here.

    The entry's return is (winnings - entry_fee) / entry_fee. Free entries
    (entry_fee == 0) have no defined return and are ignored by analytics.
    """
    __tablename__ = "lineup_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    lineup_id: Mapped[str] = mapped_column(String(64))
    contest_id: Mapped[str] = mapped_column(String(64))
    sport: Mapped[str] = mapped_column(String(20))
    contest_type: Mapped[ContestType] = mapped_column(Enum(ContestType), default=ContestType.GPP)

    entry_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    winnings: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    score: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    __table_args__ = (
        Index("ix_lineup_results_user_completed", "user_id", "completed_at"),
    )


class UserPerformanceHistory(Base):
    """A stored PerformanceReport: one user, one window, one worker cycle."""
    __tablename__ = "user_performance_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    time_frame: Mapped[str] = mapped_column(String(20))
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    sample_count: Mapped[int] = mapped_column(Integer, default=0)

    # Headline figures as columns for querying; full records as JSON
    roi: Mapped[float] = mapped_column(Float, default=0.0)
    sharpe_ratio: Mapped[float] = mapped_column(Float, default=0.0)
    max_drawdown: Mapped[float] = mapped_column(Float, default=0.0)
    win_rate: Mapped[float] = mapped_column(Float, default=0.0)
    consistency_score: Mapped[float] = mapped_column(Float, default=0.0)
    performance: Mapped[dict] = mapped_column(JSON, default=dict)
    risk: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


class PortfolioAnalytics(Base):
    """A stored PortfolioAnalysis for one user."""
    __tablename__ = "portfolio_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    method: Mapped[str] = mapped_column(String(20))
    expected_return: Mapped[float] = mapped_column(Float, default=0.0)
    risk: Mapped[float] = mapped_column(Float, default=0.0)
    sharpe_ratio: Mapped[float] = mapped_column(Float, default=0.0)
    diversification_score: Mapped[float] = mapped_column(Float, default=0.0)
    weights: Mapped[dict] = mapped_column(JSON, default=dict)
    risk_contribution: Mapped[dict] = mapped_column(JSON, default=dict)
    correlation: Mapped[dict] = mapped_column(JSON, default=dict)
    optimization_time_ms: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


class MLPrediction(Base):
    """A stored PredictionResult."""
    __tablename__ = "ml_predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prediction_id: Mapped[str] = mapped_column(String(255), unique=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    model_id: Mapped[str] = mapped_column(String(255))
    model_version: Mapped[int] = mapped_column(Integer)
    prediction_type: Mapped[str] = mapped_column(String(100))
    prediction: Mapped[dict] = mapped_column(JSON, default=dict)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
