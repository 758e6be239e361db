"""Integration models: OAuth state, provider credentials, stored API keys."""

from uuid import uuid4
from sqlalchemy import Column, String, Text, TIMESTAMP, Uuid, UniqueConstraint, func
from moodboard.models.base import Base, JSONType, utcnow


class OAuthState(Base):
    """Single-use state token for an in-flight OAuth authorization."""

    __tablename__ = "oauth_states"

    state = Column(String(128), primary_key=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    provider = Column(String(64), nullable=False)
    extra = Column(JSONType, nullable=True)  # e.g. {"shop": "..."} for Shopify
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<OAuthState(provider={self.provider}, user_id={self.user_id})>"


class IntegrationCredential(Base):
    """Encrypted OAuth tokens for one provider connection."""

    __tablename__ = "integration_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_integration_credentials_user_provider"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    provider = Column(String(64), nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    credential_metadata = Column("metadata", JSONType, nullable=True)  # Column name 'metadata' in DB
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<IntegrationCredential(provider={self.provider}, user_id={self.user_id})>"


class DataConnection(Base):
    """Named, encrypted connection config for a data source."""

    __tablename__ = "data_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "source_type", "label", name="uq_data_connections_user_source_label"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    source_type = Column(String(64), nullable=False)
    label = Column(String(255), nullable=False, default="default")
    config_encrypted = Column(Text, nullable=False)
    last_used = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<DataConnection(source_type={self.source_type}, label={self.label})>"


class ApiKey(Base):
    """Encrypted third-party API key (e.g. a Shopify Admin API token)."""

    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("user_id", "service", name="uq_api_keys_user_service"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    service = Column(String(64), nullable=False)
    key_name = Column(String(255), nullable=True)
    encrypted_key = Column(Text, nullable=False)
    last_used_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<ApiKey(service={self.service}, key_name={self.key_name})>"
