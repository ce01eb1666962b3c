"""
Report Normalizer - Canonical Credit Report Model

Both input shapes (scanned-document text and scrape captured lists) converge
on the CreditReport aggregate defined here. Storage and events only ever see
this model.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


NONE_REPORTED = "NONE REPORTED"

SCORE_MIN = 300
SCORE_MAX = 850


# =============================================================================
# ENUMS
# =============================================================================

class Bureau(str, Enum):
    """Credit reporting bureaus."""
    EQUIFAX = "Equifax"
    EXPERIAN = "Experian"
    TRANSUNION = "TransUnion"
    UNKNOWN = "Unknown"

    @classmethod
    def required(cls) -> List["Bureau"]:
        return [cls.EQUIFAX, cls.EXPERIAN, cls.TRANSUNION]

    @classmethod
    def from_text(cls, text: Optional[str]) -> Optional["Bureau"]:
        """Find a bureau name anywhere in text (case-insensitive)."""
        if not text:
            return None
        lowered = text.lower()
        for bureau in cls.required():
            if bureau.value.lower() in lowered:
                return bureau
        # Common spellings seen in scraped labels
        if "trans union" in lowered:
            return cls.TRANSUNION
        return None


class DetectionConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AccountCategory(str, Enum):
    """Account buckets. Values match the persisted category column."""
    REAL_ESTATE = "realEstate"
    REVOLVING = "revolving"
    OTHER = "other"


class InquiryType(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class PayloadKind(str, Enum):
    CAPTURED_LISTS = "captured_lists"
    RAW_TEXT = "raw_text"


class RunStatus(str, Enum):
    """Lifecycle of one ingestion run. Only PROCESSING is non-terminal."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


# =============================================================================
# CANONICAL ENTITIES
# =============================================================================

@dataclass
class Score:
    bureau: str = ""
    score: Optional[int] = None
    status: str = ""
    position: int = 0


@dataclass
class Account:
    """One tradeline as reported by one bureau."""
    bureau: str = ""
    creditor: str = ""
    account_number_mask: str = ""
    account_type: Optional[str] = None
    balance: Optional[float] = None
    high_balance: Optional[float] = None
    credit_limit: Optional[float] = None
    past_due: Optional[float] = None
    opened_on: Optional[str] = None
    reported_on: Optional[str] = None
    closed_on: Optional[str] = None
    last_activity_on: Optional[str] = None
    account_status: Optional[str] = None
    payment_status: Optional[str] = None
    remarks: List[str] = field(default_factory=list)
    category: AccountCategory = AccountCategory.OTHER
    is_negative: bool = False
    status: str = ""
    position: int = 0


@dataclass
class PersonalInformationBlock:
    position: int = 0
    status: str = ""
    fields: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class ConsumerStatement:
    bureau: str = ""
    statement: str = NONE_REPORTED
    status: str = ""
    position: int = 0

    def __post_init__(self):
        if self.statement is None or not str(self.statement).strip():
            self.statement = NONE_REPORTED


@dataclass
class Inquiry:
    bureau: str = ""
    creditor: str = ""
    inquired_on: Optional[str] = None
    inquiry_type: InquiryType = InquiryType.HARD
    position: int = 0


@dataclass
class Collection:
    bureau: str = ""
    agency: str = ""
    original_creditor: Optional[str] = None
    amount: Optional[float] = None
    account_number_mask: str = ""
    assigned_on: Optional[str] = None
    status: Optional[str] = None
    position: int = 0


@dataclass
class PublicRecord:
    bureau: str = ""
    record_type: str = ""
    filed_on: Optional[str] = None
    amount: Optional[float] = None
    court: Optional[str] = None
    reference_number: Optional[str] = None
    status: Optional[str] = None
    position: int = 0


@dataclass
class CreditorAddress:
    creditor: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class AccountBuckets:
    real_estate: List[Account] = field(default_factory=list)
    revolving: List[Account] = field(default_factory=list)
    other: List[Account] = field(default_factory=list)

    def bucket_for(self, category: AccountCategory) -> List[Account]:
        if category == AccountCategory.REAL_ESTATE:
            return self.real_estate
        if category == AccountCategory.REVOLVING:
            return self.revolving
        return self.other

    def add(self, account: Account) -> None:
        self.bucket_for(account.category).append(account)

    def all(self) -> List[Account]:
        return self.real_estate + self.revolving + self.other


@dataclass
class CreditReport:
    """
    Root aggregate. Exactly one per (run_id, user_id); a later ingestion for
    the same run replaces it wholesale.
    """
    run_id: str
    user_id: str
    collected_at: str
    version: str = "v1"
    scores: List[Score] = field(default_factory=list)
    personal_information: List[PersonalInformationBlock] = field(default_factory=list)
    consumer_statements: List[ConsumerStatement] = field(default_factory=list)
    accounts: AccountBuckets = field(default_factory=AccountBuckets)
    public_records: List[PublicRecord] = field(default_factory=list)
    collections: List[Collection] = field(default_factory=list)
    inquiries: List[Inquiry] = field(default_factory=list)
    creditor_addresses: List[CreditorAddress] = field(default_factory=list)
    raw_sections: Dict[str, Any] = field(default_factory=dict)
    additional: Dict[str, Any] = field(default_factory=dict)

    def row_counts(self) -> Dict[str, int]:
        counts = {
            "scores": len(self.scores),
            "accounts": len(self.accounts.all()),
            "personal_information": len(self.personal_information),
            "consumer_statements": len(self.consumer_statements),
            "public_records": len(self.public_records),
            "collections": len(self.collections),
            "inquiries": len(self.inquiries),
            "creditor_addresses": len(self.creditor_addresses),
        }
        counts["total"] = sum(counts.values())
        return counts


# =============================================================================
# FREE-TEXT PARSING OUTPUT (never persisted directly)
# =============================================================================

@dataclass
class BureauDetection:
    bureau: Bureau = Bureau.UNKNOWN
    confidence: DetectionConfidence = DetectionConfidence.LOW
    indicators: List[str] = field(default_factory=list)


@dataclass
class ParseResult:
    bureau: BureauDetection = field(default_factory=BureauDetection)
    sections: Dict[str, str] = field(default_factory=dict)
    accounts: List[Account] = field(default_factory=list)
    personal_info: Dict[str, Optional[str]] = field(default_factory=dict)
    scores: List[Score] = field(default_factory=list)
    consumer_statements: List[ConsumerStatement] = field(default_factory=list)
    inquiries: List[Inquiry] = field(default_factory=list)
    collections: List[Collection] = field(default_factory=list)
    public_records: List[PublicRecord] = field(default_factory=list)
    confidence_score: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "collections": len(self.collections),
            "public_records": len(self.public_records),
            "inquiries": len(self.inquiries),
        }


# =============================================================================
# SERIALIZATION
# =============================================================================

def _convert(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _convert(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_convert(v) for v in obj]
    return obj


def serialize(obj: Any) -> Any:
    """Convert a canonical dataclass into JSON-safe primitives."""
    return _convert(asdict(obj))
