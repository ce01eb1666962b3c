"""
Migration: Add ingestion tables.

Creates the raw, normalized and run-bookkeeping tables with the unique
constraints the upserts rely on:
1. credit_reports_raw - verbatim payload per run_id
2. normalized_credit_reports - one document per (run_id, user_id)
3. normalized_credit_scores - unique (user_id, bureau, run_id)
4. normalized_credit_accounts - unique natural tradeline key
5. ingestion_runs - run status per (run_id, user_id)
6. ingestion_events - append-only run events
"""
from sqlalchemy import create_engine, text
import os

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/credit_reports"
)


TABLES = {
    "credit_reports_raw": """
        CREATE TABLE credit_reports_raw (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL UNIQUE,
            user_id VARCHAR(36) NOT NULL,
            collected_at VARCHAR(40),
            payload JSON NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "normalized_credit_reports": """
        CREATE TABLE normalized_credit_reports (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(36) NOT NULL,
            collected_at VARCHAR(40),
            version VARCHAR(10) DEFAULT 'v1',
            report_json JSON NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_normalized_report_run_user UNIQUE (run_id, user_id)
        )
    """,
    "normalized_credit_scores": """
        CREATE TABLE normalized_credit_scores (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(36) NOT NULL,
            bureau VARCHAR(50) NOT NULL DEFAULT '',
            score INTEGER,
            status VARCHAR(50) DEFAULT '',
            position INTEGER DEFAULT 0,
            collected_at VARCHAR(40),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_normalized_score_user_bureau_run UNIQUE (user_id, bureau, run_id)
        )
    """,
    "normalized_credit_accounts": """
        CREATE TABLE normalized_credit_accounts (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(36) NOT NULL,
            creditor VARCHAR(255) NOT NULL DEFAULT '',
            account_number_mask VARCHAR(64) NOT NULL DEFAULT '',
            bureau VARCHAR(50) NOT NULL DEFAULT '',
            opened_on DATE,
            category VARCHAR(20) NOT NULL DEFAULT 'other',
            account_type VARCHAR(100),
            balance DOUBLE PRECISION,
            high_balance DOUBLE PRECISION,
            credit_limit DOUBLE PRECISION,
            past_due DOUBLE PRECISION,
            reported_on DATE,
            closed_on DATE,
            last_activity_on DATE,
            account_status VARCHAR(255),
            payment_status VARCHAR(255),
            remarks JSON,
            is_negative BOOLEAN DEFAULT FALSE,
            status VARCHAR(50) DEFAULT '',
            position INTEGER DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_normalized_account_natural_key
                UNIQUE (user_id, creditor, account_number_mask, bureau, opened_on, category)
        )
    """,
    "ingestion_runs": """
        CREATE TABLE ingestion_runs (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(36) NOT NULL,
            source VARCHAR(20),
            status VARCHAR(20) NOT NULL DEFAULT 'processing',
            row_counts JSON,
            missing_bureaus JSON,
            confidence_score INTEGER,
            error_code VARCHAR(50),
            error_message TEXT,
            started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            finished_at TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_ingestion_run_user UNIQUE (run_id, user_id)
        )
    """,
    "ingestion_events": """
        CREATE TABLE ingestion_events (
            id VARCHAR(36) PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(36),
            event_type VARCHAR(20) NOT NULL,
            step VARCHAR(50),
            message TEXT,
            status VARCHAR(20),
            row_counts JSON,
            missing_bureaus JSON,
            metadata_json JSON,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_raw_user ON credit_reports_raw(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_scores_run ON normalized_credit_scores(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_accounts_run ON normalized_credit_accounts(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_accounts_user ON normalized_credit_accounts(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_runs_run ON ingestion_runs(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_run ON ingestion_events(run_id)",
]


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    """Create all ingestion tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        for table_name, ddl in TABLES.items():
            if table_exists(conn, table_name):
                print(f"{table_name} table already exists")
            else:
                conn.execute(text(ddl))
                print(f"Created {table_name} table")

        for ddl in INDEXES:
            conn.execute(text(ddl))

        conn.commit()

    print("Ingestion tables migration complete")


if __name__ == "__main__":
    run_migration()
