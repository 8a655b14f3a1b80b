"""
SQLAlchemy ORM Models for FlowLoom

- BusinessFlowDocumentRecord: one persisted business flow per
  (keyword, repository_version, api_path)
"""

from sqlalchemy import (
    Column, String, Integer, Text, TIMESTAMP, Index, TypeDecorator, UniqueConstraint, JSON,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID, JSONB
import uuid
from datetime import datetime

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# UUID type that works with both PostgreSQL and SQLite
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == 'postgresql':
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


# =============================================================================
# Business flows
# =============================================================================

class BusinessFlowDocumentRecord(Base):
    """Persisted projection of a traced call chain.

    Created once per cache key and never updated afterwards. The unique
    constraint is what turns concurrent generations of the same flow into
    a read-back of the winner.
    """
    __tablename__ = "business_flow_documents"
    __table_args__ = (
        UniqueConstraint('keyword', 'repository_version', 'api_path',
                         name='uq_flow_document_key'),
        Index('idx_flow_documents_keyword', 'keyword'),
        Index('idx_flow_documents_api_path', 'api_path'),
    )

    flow_id = Column(UUID(), primary_key=True, default=uuid.uuid4)

    # Cache key
    keyword = Column(String(255), nullable=False)
    repository_version = Column(String(64), nullable=False)
    api_path = Column(String(1024), nullable=False)

    # Entry point
    entry_class = Column(String(512), nullable=False)
    entry_method = Column(String(255), nullable=False)
    entry_type = Column(String(20), nullable=False)     # EntryType value
    http_method = Column(String(16), nullable=True)
    relevance_score = Column(Integer, default=0, nullable=False)

    # Repositories
    primary_repository = Column(String(1024), nullable=True)
    dependency_repositories = Column(JSONType, nullable=True)   # list of URLs

    # Rendered flow
    mermaid_diagram = Column(Text, nullable=True)
    call_chain_json = Column(JSONType, nullable=True)           # call_chain_to_dict shape
    related_services = Column(JSONType, nullable=True)          # list of service names
    node_count = Column(Integer, default=0, nullable=False)
    max_depth = Column(Integer, default=0, nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<BusinessFlowDocumentRecord(flow_id={self.flow_id}, keyword='{self.keyword}', "
            f"api_path='{self.api_path}', version='{self.repository_version}')>"
        )
