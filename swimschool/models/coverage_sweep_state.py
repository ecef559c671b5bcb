"""Coverage sweep state model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base

SWEEP_STATE_ID = 1


class CoverageSweepState(Base):
    """Single row recording when the throttled sweep last ran."""

    __tablename__ = "coverage_sweep_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SWEEP_STATE_ID)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<CoverageSweepState(last_run_at={self.last_run_at})>"
