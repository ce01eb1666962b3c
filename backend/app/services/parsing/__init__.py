"""Report Normalizer - Parsing Layer

Scalar normalizers, bureau detection, section segmentation and field
extraction for scanned-document text, plus label canonicalization for scrape
payloads.
"""
from .aliases import canonicalize
from .bureau_detector import detect_bureau
from .confidence import score_confidence
from .normalizers import normalize_date, normalize_money, parse_score, strip_html
from .segmenter import segment_sections
from .text_parser import CreditReportTextParser, parse_report_text

__all__ = [
    "canonicalize",
    "detect_bureau",
    "score_confidence",
    "normalize_date", "normalize_money", "parse_score", "strip_html",
    "segment_sections",
    "CreditReportTextParser", "parse_report_text",
]
