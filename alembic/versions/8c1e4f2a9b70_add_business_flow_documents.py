"""add business flow documents table

Revision ID: 8c1e4f2a9b70
Revises:
Create Date: 2026-10-18 09:12:31.504217

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '8c1e4f2a9b70'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_UUID = sa.String(length=36).with_variant(postgresql.UUID(as_uuid=True), 'postgresql')
_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table('business_flow_documents',
        sa.Column('flow_id', _UUID, nullable=False),
        sa.Column('keyword', sa.String(length=255), nullable=False),
        sa.Column('repository_version', sa.String(length=64), nullable=False),
        sa.Column('api_path', sa.String(length=1024), nullable=False),
        sa.Column('entry_class', sa.String(length=512), nullable=False),
        sa.Column('entry_method', sa.String(length=255), nullable=False),
        sa.Column('entry_type', sa.String(length=20), nullable=False),
        sa.Column('http_method', sa.String(length=16), nullable=True),
        sa.Column('relevance_score', sa.Integer(), server_default='0', nullable=False),
        sa.Column('primary_repository', sa.String(length=1024), nullable=True),
        sa.Column('dependency_repositories', _JSON, nullable=True),
        sa.Column('mermaid_diagram', sa.Text(), nullable=True),
        sa.Column('call_chain_json', _JSON, nullable=True),
        sa.Column('related_services', _JSON, nullable=True),
        sa.Column('node_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('max_depth', sa.Integer(), server_default='0', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('flow_id'),
        sa.UniqueConstraint('keyword', 'repository_version', 'api_path',
                            name='uq_flow_document_key'),
    )
    op.create_index('idx_flow_documents_keyword', 'business_flow_documents', ['keyword'])
    op.create_index('idx_flow_documents_api_path', 'business_flow_documents', ['api_path'])


def downgrade() -> None:
    op.drop_index('idx_flow_documents_api_path', table_name='business_flow_documents')
    op.drop_index('idx_flow_documents_keyword', table_name='business_flow_documents')
    op.drop_table('business_flow_documents')
