"""Learning intent model, the source of trigger eligibility."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from orchestrator.core.datetime_utils import utc_now
from orchestrator.models.base import Base

IN_PROGRESS = "in_progress"


class LearningIntent(Base):
    """A user's declared learning goal; only its owner and status matter here."""

    __tablename__ = "learning_intents"

    intent_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str | None] = mapped_column(String(100), index=True)
    status: Mapped[str] = mapped_column(String(30), default=IN_PROGRESS, index=True)
    topic: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

    def __repr__(self) -> str:
        return f"<LearningIntent {self.intent_id} user={self.user_id} {self.status}>"
