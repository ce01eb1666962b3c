"""
Report Normalizer - SQLAlchemy ORM Models
Raw payloads, normalized report rows and ingestion run bookkeeping
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, JSON, Boolean, Date, UniqueConstraint
from ..database import Base


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# RAW STORAGE
# =============================================================================

class RawReportDB(Base):
    """
    Verbatim inbound payload, written before normalization starts so a run can
    always be re-normalized from what was actually received.
    """
    __tablename__ = "credit_reports_raw"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, unique=True)
    user_id = Column(String(36), nullable=False, index=True)
    collected_at = Column(String(40))
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# NORMALIZED STORAGE
# =============================================================================

class NormalizedReportDB(Base):
    """One canonical report document per (run_id, user_id). Replaced, never merged."""
    __tablename__ = "normalized_credit_reports"
    __table_args__ = (
        UniqueConstraint("run_id", "user_id", name="uq_normalized_report_run_user"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    collected_at = Column(String(40))
    version = Column(String(10), default="v1")

    # Full canonical report as JSON
    report_json = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class NormalizedScoreDB(Base):
    __tablename__ = "normalized_credit_scores"
    __table_args__ = (
        UniqueConstraint("user_id", "bureau", "run_id", name="uq_normalized_score_user_bureau_run"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    bureau = Column(String(50), nullable=False, default="")
    score = Column(Integer, nullable=True)  # 300-850 or NULL
    status = Column(String(50), default="")
    position = Column(Integer, default=0)
    collected_at = Column(String(40))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NormalizedAccountDB(Base):
    """
    One tradeline row. The natural key deliberately leaves out run_id, so a
    later run that reports the same tradeline takes the row over.
    """
    __tablename__ = "normalized_credit_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "creditor", "account_number_mask", "bureau", "opened_on", "category",
            name="uq_normalized_account_natural_key",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    # Natural key (empty string instead of NULL so conflicts are detected)
    creditor = Column(String(255), nullable=False, default="")
    account_number_mask = Column(String(64), nullable=False, default="")
    bureau = Column(String(50), nullable=False, default="")
    opened_on = Column(Date, nullable=True)
    category = Column(String(20), nullable=False, default="other")

    account_type = Column(String(100))
    balance = Column(Float)
    high_balance = Column(Float)
    credit_limit = Column(Float)
    past_due = Column(Float)
    reported_on = Column(Date)
    closed_on = Column(Date)
    last_activity_on = Column(Date)
    account_status = Column(String(255))
    payment_status = Column(String(255))
    remarks = Column(JSON)
    is_negative = Column(Boolean, default=False)
    status = Column(String(50), default="")
    position = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# RUN BOOKKEEPING
# =============================================================================

class IngestionRunDB(Base):
    """State of one ingestion run. Ends completed, partial or failed."""
    __tablename__ = "ingestion_runs"
    __table_args__ = (
        UniqueConstraint("run_id", "user_id", name="uq_ingestion_run_user"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    source = Column(String(20))  # captured_lists, raw_text, dry_run, invalid
    status = Column(String(20), nullable=False, default="processing")

    row_counts = Column(JSON)
    missing_bureaus = Column(JSON)
    confidence_score = Column(Integer, nullable=True)

    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class IngestionEventDB(Base):
    """
    Append-only progress and outcome events for a run.

    event_type: step | warn | error | done
    """
    __tablename__ = "ingestion_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=True)
    event_type = Column(String(20), nullable=False)
    step = Column(String(50), nullable=True)
    message = Column(Text, nullable=True)

    status = Column(String(20), nullable=True)
    row_counts = Column(JSON, nullable=True)
    missing_bureaus = Column(JSON, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
