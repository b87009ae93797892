"""users and calculations tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            username VARCHAR(50) UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            api_key TEXT UNIQUE NOT NULL,
            created_at TIMESTAMPTZ DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS calculations (
            id SERIAL PRIMARY KEY,
            user_id INT NOT NULL REFERENCES users(id),
            parent_id INT REFERENCES calculations(id),
            value NUMERIC NOT NULL,
            operation VARCHAR(1) CHECK (operation IN ('+', '-', '*', '/')),
            operand NUMERIC,
            created_at TIMESTAMPTZ DEFAULT now(),
            CONSTRAINT calculations_root_shape CHECK (
                (parent_id IS NULL AND operation IS NULL AND operand IS NULL)
                OR (parent_id IS NOT NULL AND operation IS NOT NULL AND operand IS NOT NULL)
            )
        );

        CREATE INDEX IF NOT EXISTS idx_calculations_parent_id ON calculations(parent_id);
        CREATE INDEX IF NOT EXISTS idx_calculations_created_at ON calculations(created_at);
    """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS calculations CASCADE;")
    op.execute("DROP TABLE IF EXISTS users CASCADE;")
