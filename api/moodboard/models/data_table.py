"""User data table model (imported or transformed tabular data)."""

from uuid import uuid4
from sqlalchemy import Column, String, Text, Integer, TIMESTAMP, Uuid, UniqueConstraint, func
from moodboard.models.base import Base, JSONType, utcnow


class UserDataTable(Base):
    """Rows and schema of a table a user imported or derived."""

    __tablename__ = "user_data_tables"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_user_data_tables_user_name"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    source = Column(String(64), nullable=False, default="manual")
    description = Column(Text, nullable=True)
    data = Column(JSONType, nullable=False, default=list)
    table_schema = Column("schema", JSONType, nullable=False, default=list)  # Column name 'schema' in DB
    row_count = Column(Integer, nullable=False, default=0, server_default="0")
    source_config = Column(JSONType, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())

    def to_dict(self, include_data: bool = True) -> dict:
        payload = {
            "id": str(self.id),
            "name": self.name,
            "source": self.source,
            "description": self.description,
            "schema": self.table_schema or [],
            "row_count": self.row_count,
            "source_config": self.source_config,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_data:
            payload["data"] = self.data or []
        return payload

    def __repr__(self):
        return f"<UserDataTable(id={self.id}, name={self.name}, rows={self.row_count})>"
