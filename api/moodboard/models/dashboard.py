"""Dashboard model: a saved canvas and its publishing settings."""

from uuid import uuid4
from sqlalchemy import Column, String, Text, Boolean, Integer, TIMESTAMP, Uuid, func
from moodboard.models.base import Base, JSONType, utcnow


class Dashboard(Base):
    """A user's canvas project."""

    __tablename__ = "dashboards"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)  # Supabase user ID (no FK)
    name = Column(String(255), nullable=False, default="Untitled Dashboard")
    description = Column(Text, nullable=True)
    slug = Column(String(255), nullable=True)
    share_slug = Column(String(255), nullable=True, unique=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False, server_default="false")
    is_unlisted = Column(Boolean, nullable=False, default=False, server_default="false")
    allow_comments = Column(Boolean, nullable=False, default=False, server_default="false")
    allow_downloads = Column(Boolean, nullable=False, default=False, server_default="false")
    canvas_mode = Column(String(32), nullable=False, default="design", server_default="design")
    canvas_items = Column(JSONType, nullable=False, default=list)
    canvas_elements = Column(JSONType, nullable=False, default=list)
    data_tables = Column(JSONType, nullable=False, default=list)
    connections = Column(JSONType, nullable=False, default=list)
    canvas_background = Column(JSONType, nullable=True)
    theme = Column(String(32), nullable=True)
    state_json = Column(JSONType, nullable=True)
    thumbnail_url = Column(String(1024), nullable=True)
    view_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now(), index=True)

    @property
    def visibility(self) -> str:
        if self.is_unlisted:
            return "unlisted"
        if self.is_public:
            return "public"
        return "private"

    def __repr__(self):
        return f"<Dashboard(id={self.id}, name={self.name})>"
