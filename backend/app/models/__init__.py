"""Report Normalizer - Data Models"""
from .canonical import (
    # Enums
    Bureau, DetectionConfidence, AccountCategory, InquiryType, PayloadKind, RunStatus,
    # Canonical report
    Score, Account, PersonalInformationBlock, ConsumerStatement, Inquiry, Collection,
    PublicRecord, CreditorAddress, AccountBuckets, CreditReport,
    # Free-text parsing output
    BureauDetection, ParseResult,
    NONE_REPORTED, serialize,
)

__all__ = [
    "Bureau", "DetectionConfidence", "AccountCategory", "InquiryType", "PayloadKind", "RunStatus",
    "Score", "Account", "PersonalInformationBlock", "ConsumerStatement", "Inquiry", "Collection",
    "PublicRecord", "CreditorAddress", "AccountBuckets", "CreditReport",
    "BureauDetection", "ParseResult",
    "NONE_REPORTED", "serialize",
]
