"""
Report Normalizer - Scanned Document Parser

Turns text extracted from a bureau PDF into a ParseResult:

    text -> bureau detection -> sections -> per-section extractors -> confidence

A section whose extractor blows up is skipped with a warning; the rest of the
document is still parsed and the confidence score reflects what was lost.
"""
from __future__ import annotations
import logging
from typing import Callable

from ...models.canonical import Bureau, ParseResult
from .bureau_detector import detect_bureau
from .confidence import score_confidence
from .extractors import (
    extract_accounts,
    extract_collections,
    extract_consumer_statement,
    extract_inquiries,
    extract_personal_info,
    extract_public_records,
    extract_scores,
)
from .segmenter import (
    ACCOUNTS, COLLECTIONS, INQUIRIES, PERSONAL_INFO, PUBLIC_RECORDS,
    SECTION_HEADERS, section_body, segment_sections,
)

logger = logging.getLogger(__name__)


class CreditReportTextParser:
    """
    Parser for free-text bureau reports.

    Usage:
        parser = CreditReportTextParser(text)
        result = parser.parse()
    """

    def __init__(self, text: str):
        self.text = text or ""
        self.result = ParseResult()

    def parse(self) -> ParseResult:
        if not self.text.strip():
            self.result.errors.append("No text to parse")
            return self.result

        detection = detect_bureau(self.text)
        self.result.bureau = detection
        bureau_name = detection.bureau.value if detection.bureau != Bureau.UNKNOWN else ""
        if detection.bureau == Bureau.UNKNOWN:
            self.result.warnings.append("Could not determine reporting bureau")

        self.result.sections = segment_sections(self.text)
        for name in SECTION_HEADERS:
            if name not in self.result.sections:
                self.result.warnings.append(f"Section not found: {name}")

        self._run_section(PERSONAL_INFO, self._extract_personal_info)
        self._run_section(ACCOUNTS, lambda body: self._extract_accounts(body, detection.bureau))
        self._run_section(COLLECTIONS, lambda body: self._extract_collections(body, bureau_name))
        self._run_section(PUBLIC_RECORDS, lambda body: self._extract_public_records(body, bureau_name))
        self._run_section(INQUIRIES, lambda body: self._extract_inquiries(body, bureau_name))

        self.result.scores = extract_scores(self.text, bureau_name)
        self.result.consumer_statements = [extract_consumer_statement(self.text, bureau_name)]

        self.result.confidence_score = score_confidence(
            detection.confidence,
            len(self.result.sections),
            len(self.result.accounts),
        )

        logger.info(
            f"Parsed {detection.bureau.value} report: {len(self.result.sections)} sections, "
            f"{len(self.result.accounts)} accounts, confidence {self.result.confidence_score}"
        )
        return self.result

    def _run_section(self, name: str, extractor: Callable[[str], None]) -> None:
        content = self.result.sections.get(name)
        if content is None:
            return
        try:
            extractor(section_body(content))
        except Exception as exc:
            logger.warning(f"Extraction failed for section {name}: {exc}", exc_info=True)
            self.result.warnings.append(f"Extraction failed for section {name}: {exc}")

    def _extract_personal_info(self, body: str) -> None:
        self.result.personal_info = extract_personal_info(body)
        if not self.result.personal_info:
            self.result.warnings.append("No personal information fields recognized")

    def _extract_accounts(self, body: str, bureau: Bureau) -> None:
        self.result.accounts = extract_accounts(body, bureau)
        negatives = sum(1 for account in self.result.accounts if account.is_negative)
        logger.info(f"Extracted {len(self.result.accounts)} accounts ({negatives} negative)")

    def _extract_collections(self, body: str, bureau: str) -> None:
        self.result.collections = extract_collections(body, bureau)

    def _extract_public_records(self, body: str, bureau: str) -> None:
        self.result.public_records = extract_public_records(body, bureau)

    def _extract_inquiries(self, body: str, bureau: str) -> None:
        self.result.inquiries = extract_inquiries(body, bureau)


def parse_report_text(text: str) -> ParseResult:
    """Factory function to parse scanned-document text."""
    return CreditReportTextParser(text).parse()
