"""Initial schema - feedback ledger, embeddings, system settings + pgvector.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID, ARRAY

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Must match settings.EMBEDDING_DIMENSION
EMBEDDING_DIMENSION = 1536

TABLES = ["photo_feedback", "photo_feedback_embeddings", "system_settings"]


def upgrade() -> None:
    # pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    feedback_origin = sa.Enum("ai", "user", name="feedback_origin")

    # --- 1. photo_feedback (ledger) ---
    op.create_table(
        "photo_feedback",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("photo_id", sa.String(100), nullable=True),
        sa.Column("group_id", sa.String(100), nullable=True),
        sa.Column("inspection_id", sa.String(100), nullable=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("origin", feedback_origin, nullable=False),
        sa.Column("validated", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("tags", ARRAY(sa.String), nullable=True),
        sa.Column("parent_feedback_id", UUID(as_uuid=True), sa.ForeignKey("photo_feedback.id"), nullable=True),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("temperature", sa.Float, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(origin = 'ai' AND confidence BETWEEN 0 AND 1) OR (origin = 'user' AND confidence IS NULL)",
            name="ck_photo_feedback_confidence_origin",
        ),
    )

    # --- 2. photo_feedback_embeddings ---
    op.create_table(
        "photo_feedback_embeddings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("feedback_id", UUID(as_uuid=True), sa.ForeignKey("photo_feedback.id"), nullable=False, unique=True),
        sa.Column("context_text", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.execute(
        f"ALTER TABLE photo_feedback_embeddings ADD COLUMN embedding vector({EMBEDDING_DIMENSION}) NOT NULL"
    )

    # --- 3. system_settings ---
    op.create_table(
        "system_settings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("key", sa.String(100), unique=True, nullable=False),
        sa.Column("value", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Indexes ---
    op.create_index("idx_feedback_photo", "photo_feedback", ["photo_id", "created_at"])
    op.create_index("idx_feedback_inspection", "photo_feedback", ["inspection_id"])
    op.create_index("idx_feedback_parent", "photo_feedback", ["parent_feedback_id"])
    op.create_index(
        "idx_feedback_validated", "photo_feedback", ["validated"],
        postgresql_where=sa.text("validated = true"),
    )

    # pgvector HNSW index (cosine)
    op.execute(
        "CREATE INDEX idx_feedback_embedding_hnsw ON photo_feedback_embeddings "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    # Retrieval primitive for SQL consumers: top-K by cosine similarity >= threshold
    op.execute(f"""
        CREATE OR REPLACE FUNCTION match_photo_feedback(
            query_embedding vector({EMBEDDING_DIMENSION}),
            match_count integer DEFAULT 4,
            similarity_threshold double precision DEFAULT 0.65
        )
        RETURNS TABLE (
            feedback_id uuid,
            description text,
            similarity double precision,
            origin feedback_origin,
            context_text text,
            tags varchar[]
        )
        LANGUAGE sql STABLE AS $$
            SELECT e.feedback_id,
                   f.description,
                   1 - (e.embedding <=> query_embedding) AS similarity,
                   f.origin,
                   e.context_text,
                   f.tags
            FROM photo_feedback_embeddings e
            JOIN photo_feedback f ON f.id = e.feedback_id
            WHERE 1 - (e.embedding <=> query_embedding) >= similarity_threshold
              AND (f.metadata->>'supersededByUser') IS DISTINCT FROM 'true'
            ORDER BY e.embedding <=> query_embedding
            LIMIT match_count;
        $$;
    """)

    # updated_at auto-update trigger
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in TABLES:
        op.execute(f"""
            CREATE TRIGGER trigger_update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trigger_update_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")
    op.execute("DROP FUNCTION IF EXISTS match_photo_feedback(vector, integer, double precision)")

    for table in ["photo_feedback_embeddings", "system_settings", "photo_feedback"]:
        op.drop_table(table)

    op.execute("DROP TYPE IF EXISTS feedback_origin")
    op.execute("DROP EXTENSION IF EXISTS vector")
