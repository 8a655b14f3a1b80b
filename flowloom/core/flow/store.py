"""Persistence of business flow documents.

A document is written once per (keyword, repository_version, api_path)
and never updated. ``save`` is a natural-key upsert: read, else insert,
and on a unique-key collision re-read the row that won the race.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import String, cast
from sqlalchemy.exc import IntegrityError

from ..constants import DEFAULT_PAGE_SIZE
from ..db import DatabaseManager
from ..db.models import BusinessFlowDocumentRecord
from .models import BusinessFlowDocument

logger = logging.getLogger(__name__)


class FlowDocumentStore:
    """Insert-once store for BusinessFlowDocuments."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    # =========================================================================
    # Cache contract
    # =========================================================================

    def find_existing(
        self,
        keyword: str,
        repository_version: str,
        api_path: str,
    ) -> Optional[BusinessFlowDocument]:
        with self.db.get_session() as session:
            record = session.query(BusinessFlowDocumentRecord).filter(
                BusinessFlowDocumentRecord.keyword == keyword,
                BusinessFlowDocumentRecord.repository_version == repository_version,
                BusinessFlowDocumentRecord.api_path == api_path,
            ).first()
            return self._record_to_document(record) if record else None

    def save(self, document: BusinessFlowDocument) -> Tuple[BusinessFlowDocument, bool]:
        """Insert a document unless its cache key already exists.

        The stored document alone is ``save(document)[0]``; the ``created``
        flag lets the caller tell a fresh insert from a cache hit without a
        second query.

        Returns:
            (stored document, created). ``created`` is False when another
            writer already owned the key; the stored document is then theirs.
        """
        existing = self.find_existing(
            document.keyword, document.repository_version, document.api_path,
        )
        if existing is not None:
            return existing, False

        try:
            with self.db.get_session() as session:
                record = self._document_to_record(document)
                session.add(record)
                session.flush()
                saved = self._record_to_document(record)
        except IntegrityError:
            logger.info(
                f"Flow already stored concurrently: keyword={document.keyword}, "
                f"api={document.api_path}; reading back"
            )
            winner = self.find_existing(
                document.keyword, document.repository_version, document.api_path,
            )
            if winner is None:
                raise
            return winner, False

        logger.info(
            f"Flow saved: keyword={saved.keyword}, api={saved.api_path}, "
            f"score={saved.relevance_score}"
        )
        return saved, True

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, flow_id: str) -> Optional[BusinessFlowDocument]:
        try:
            key = UUID(str(flow_id))
        except ValueError:
            return None
        with self.db.get_session() as session:
            record = session.query(BusinessFlowDocumentRecord).filter(
                BusinessFlowDocumentRecord.flow_id == key
            ).first()
            return self._record_to_document(record) if record else None

    def search_by_keyword(
        self,
        keyword: str,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> List[BusinessFlowDocument]:
        """Flows generated for ``keyword``, best match first."""
        with self.db.get_session() as session:
            records = session.query(BusinessFlowDocumentRecord).filter(
                BusinessFlowDocumentRecord.keyword == keyword
            ).order_by(
                BusinessFlowDocumentRecord.relevance_score.desc(),
                BusinessFlowDocumentRecord.created_at.desc(),
            ).offset(page * size).limit(size).all()
            return [self._record_to_document(r) for r in records]

    def search_by_service(
        self,
        service_name: str,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> List[BusinessFlowDocument]:
        """Flows whose call chain touches ``service_name``, newest first."""
        needle = f'%"{service_name}"%'
        with self.db.get_session() as session:
            records = session.query(BusinessFlowDocumentRecord).filter(
                cast(BusinessFlowDocumentRecord.related_services, String).like(needle)
            ).order_by(
                BusinessFlowDocumentRecord.created_at.desc(),
            ).offset(page * size).limit(size).all()
            return [
                self._record_to_document(r) for r in records
                if service_name in (r.related_services or [])
            ]

    def search_by_api_path(self, api_path: str) -> Optional[BusinessFlowDocument]:
        """Newest flow generated for an endpoint, across keywords and versions."""
        with self.db.get_session() as session:
            record = session.query(BusinessFlowDocumentRecord).filter(
                BusinessFlowDocumentRecord.api_path == api_path
            ).order_by(BusinessFlowDocumentRecord.created_at.desc()).first()
            return self._record_to_document(record) if record else None

    def count(self) -> int:
        with self.db.get_session() as session:
            return session.query(BusinessFlowDocumentRecord).count()

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _document_to_record(document: BusinessFlowDocument) -> BusinessFlowDocumentRecord:
        return BusinessFlowDocumentRecord(
            keyword=document.keyword,
            repository_version=document.repository_version,
            api_path=document.api_path,
            entry_class=document.entry_class,
            entry_method=document.entry_method,
            entry_type=document.entry_type,
            http_method=document.http_method,
            relevance_score=document.relevance_score,
            primary_repository=document.primary_repository,
            dependency_repositories=document.dependency_repositories,
            mermaid_diagram=document.mermaid_diagram,
            call_chain_json=document.call_chain_json,
            related_services=document.related_services,
            node_count=document.node_count,
            max_depth=document.max_depth,
            description=document.description,
        )

    @staticmethod
    def _record_to_document(record: BusinessFlowDocumentRecord) -> BusinessFlowDocument:
        return BusinessFlowDocument(
            flow_id=str(record.flow_id),
            keyword=record.keyword,
            repository_version=record.repository_version,
            api_path=record.api_path,
            entry_class=record.entry_class,
            entry_method=record.entry_method,
            entry_type=record.entry_type,
            http_method=record.http_method,
            relevance_score=record.relevance_score,
            primary_repository=record.primary_repository,
            dependency_repositories=record.dependency_repositories,
            mermaid_diagram=record.mermaid_diagram,
            call_chain_json=record.call_chain_json,
            related_services=record.related_services,
            node_count=record.node_count,
            max_depth=record.max_depth,
            description=record.description,
            created_at=record.created_at,
        )
