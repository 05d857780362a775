from __future__ import annotations

from alembic import op

revision = "0001_statements"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Extensions for UUID generation (if not already present)
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS statements (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            source_file_name TEXT NOT NULL,
            source_file_sha256 VARCHAR(64) NOT NULL,
            bank TEXT,
            account_name TEXT,
            statement_type VARCHAR(16) NOT NULL DEFAULT 'bank'
                CHECK (statement_type IN ('bank', 'credit_card')),
            period_start DATE NOT NULL,
            period_end DATE NOT NULL,
            currency VARCHAR(8) NOT NULL DEFAULT 'SGD',
            uploaded_by UUID NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'ingesting'
                CHECK (status IN ('ingesting', 'parsed', 'ingested', 'failed')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_statements_user_file UNIQUE (uploaded_by, source_file_sha256)
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_statements_user_status ON statements(uploaded_by, status);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL,
            statement_id UUID REFERENCES statements(id) ON DELETE SET NULL,
            transaction_identifier TEXT NOT NULL,
            date DATE NOT NULL,
            month_bucket VARCHAR(7) NOT NULL,
            description TEXT NOT NULL,
            amount NUMERIC(18,2) NOT NULL,
            balance NUMERIC(18,2),
            statement_page INTEGER,
            line_number INTEGER,
            status VARCHAR(16) NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'voided')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_transactions_user_identifier UNIQUE (user_id, transaction_identifier)
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_transactions_user_month ON transactions(user_id, month_bucket);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS transaction_imports (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            statement_id UUID NOT NULL REFERENCES statements(id) ON DELETE CASCADE,
            transaction_identifier TEXT NOT NULL,
            date DATE NOT NULL,
            month_bucket VARCHAR(7) NOT NULL,
            description TEXT NOT NULL,
            amount NUMERIC(18,2) NOT NULL,
            balance NUMERIC(18,2),
            statement_page INTEGER,
            line_number INTEGER,
            resolution VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (resolution IN ('pending', 'accepted', 'rejected')),
            existing_transaction_id UUID REFERENCES transactions(id) ON DELETE SET NULL,
            notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_transaction_imports_statement ON transaction_imports(statement_id, resolution);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transaction_imports;")
    op.execute("DROP TABLE IF EXISTS transactions;")
    op.execute("DROP TABLE IF EXISTS statements;")
