# agrotrace/infrastructure/database/models.py

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)

from agrotrace.infrastructure.database.session import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntegerId = BigInteger().with_variant(Integer, "sqlite")


class AuditEventRecord(Base):
    """Append-only audit row. Never updated or deleted by the application."""

    __tablename__ = "audit_events"

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)

    tenant_id = Column(BigInteger, nullable=True, index=True)
    tenant_name = Column(String(255), nullable=True)
    scope_key = Column(String(64), nullable=False)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(BigInteger, nullable=True)
    entity_code = Column(String(100), nullable=False)

    operation_type = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)
    before_state = Column(Text, nullable=True)
    after_state = Column(Text, nullable=True)
    changed_fields = Column(JSON, nullable=True)

    actor_id = Column(BigInteger, nullable=False)
    actor_email = Column(String(255), nullable=True)
    client_ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    module = Column(String(20), nullable=False)
    criticality = Column(String(20), nullable=False)
    chained = Column(Boolean, nullable=False, default=False)

    self_hash = Column(String(128), nullable=False)
    previous_hash = Column(String(128), nullable=True)

    occurred_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_audit_events_entity", "tenant_id", "entity_type", "entity_id"),
        Index("ix_audit_events_scope_chain", "scope_key", "chained", "id"),
        Index("ix_audit_events_occurred_at", "tenant_id", "occurred_at"),
    )


class AuditChainHeadRecord(Base):
    """Tail pointer per chain scope. The only mutable audit row; advanced by compare-and-set."""

    __tablename__ = "audit_chain_heads"

    scope_key = Column(String(64), primary_key=True)
    last_hash = Column(String(128), nullable=False)
    last_event_id = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
