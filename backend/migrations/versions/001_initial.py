"""Initial database schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates the PostgreSQL tables:
- regions, departements, communes, groupements: reference data
- aliases: alternative names mapped to official codes
- api_keys: hashed API keys for authenticated quotas
- batch_match_requests, batch_match_items: batch matching state
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm"')

    # =========================
    # Reference Tables
    # =========================
    op.create_table(
        "regions",
        sa.Column("code", sa.String(3), primary_key=True),
        sa.Column("nom", sa.String(255), nullable=False),
    )

    op.create_table(
        "departements",
        sa.Column("code", sa.String(3), primary_key=True),
        sa.Column("nom", sa.String(255), nullable=False),
        sa.Column(
            "code_region",
            sa.String(3),
            sa.ForeignKey("regions.code"),
            nullable=False,
        ),
    )
    op.create_index("idx_departements_region", "departements", ["code_region"])

    op.create_table(
        "communes",
        sa.Column("code", sa.String(5), primary_key=True),
        sa.Column("nom", sa.String(255), nullable=False),
        sa.Column(
            "code_departement",
            sa.String(3),
            sa.ForeignKey("departements.code"),
            nullable=False,
        ),
        sa.Column("code_region", sa.String(3), sa.ForeignKey("regions.code"), nullable=False),
    )
    op.create_index("idx_communes_departement", "communes", ["code_departement"])
    op.create_index("idx_communes_region", "communes", ["code_region"])

    op.create_table(
        "groupements",
        sa.Column("siren", sa.String(9), primary_key=True),
        sa.Column("nom", sa.String(255), nullable=False),
        # EPCI_CC, EPCI_CA, EPCI_METROPOLE, SYNDICAT, PETR ...
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("code_region", sa.String(3), sa.ForeignKey("regions.code"), nullable=True),
    )
    op.create_index("idx_groupements_region", "groupements", ["code_region"])
    op.create_index("idx_groupements_type", "groupements", ["type"])

    # Trigram indexes for ILIKE '%...%' name search
    for table in ("regions", "departements", "communes", "groupements"):
        op.execute(
            f"CREATE INDEX idx_{table}_nom_trgm ON {table} USING gin (nom gin_trgm_ops)"
        )

    # =========================
    # Aliases
    # =========================
    op.create_table(
        "aliases",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("uuid_generate_v4()"),
        ),
        sa.Column("alias", sa.String(255), nullable=False),
        sa.Column("alias_norm", sa.String(255), nullable=False),
        sa.Column("code_officiel", sa.String(9), nullable=False),
        sa.Column("type", sa.String(50), nullable=True),
        sa.Column("source", sa.String(50), nullable=False, server_default="manual"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index("idx_aliases_alias", "aliases", ["alias"], unique=True)
    op.create_index("idx_aliases_alias_norm", "aliases", ["alias_norm"])
    op.create_index("idx_aliases_code", "aliases", ["code_officiel"])

    # =========================
    # API Keys
    # =========================
    op.create_table(
        "api_keys",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("uuid_generate_v4()"),
        ),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("key_prefix", sa.String(12), nullable=False),
        sa.Column("key_hash", sa.Text, nullable=False),
        sa.Column("revoked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_calls", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index("idx_api_keys_prefix", "api_keys", ["key_prefix"])

    # =========================
    # Batch Matching
    # =========================
    op.create_table(
        "batch_match_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("client_id", sa.String(100), nullable=True),
        sa.Column("webhook_url", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_items", sa.Integer, nullable=False),
        sa.Column("processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("matched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("suggestions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_batch_requests_status", "batch_match_requests", ["status"])
    op.create_index("idx_batch_requests_expires", "batch_match_requests", ["expires_at"])

    op.create_table(
        "batch_match_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("batch_match_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("input_index", sa.Integer, nullable=False),
        sa.Column("query", sa.String(200), nullable=False),
        sa.Column("hints", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("code", sa.String(9), nullable=True),
        sa.Column("nom", sa.String(255), nullable=True),
        sa.Column("type", sa.String(50), nullable=True),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("match_source", sa.String(20), nullable=True),
        sa.Column("alternatives", postgresql.JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
    )
    op.create_index(
        "idx_batch_items_request_index",
        "batch_match_items",
        ["request_id", "input_index"],
        unique=True,
    )
    op.create_index("idx_batch_items_request_status", "batch_match_items", ["request_id", "status"])


def downgrade() -> None:
    op.drop_table("batch_match_items")
    op.drop_table("batch_match_requests")
    op.drop_table("api_keys")
    op.drop_table("aliases")
    op.drop_table("groupements")
    op.drop_table("communes")
    op.drop_table("departements")
    op.drop_table("regions")
