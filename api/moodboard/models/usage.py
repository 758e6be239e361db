"""Per-user daily AI image usage counter."""

from sqlalchemy import Column, Date, Integer, Uuid
from moodboard.models.base import Base


class AIImageUsage(Base):
    """Number of images a user generated on a given UTC day."""

    __tablename__ = "ai_image_usage"

    user_id = Column(Uuid(as_uuid=True), primary_key=True)
    usage_date = Column(Date, primary_key=True)
    used = Column(Integer, nullable=False, default=0, server_default="0")

    def __repr__(self):
        return f"<AIImageUsage(user_id={self.user_id}, date={self.usage_date}, used={self.used})>"
