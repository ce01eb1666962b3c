"""
Section segmentation for scanned-document text.

A section starts at the first header variant found in the document and runs
to the next header of any section, or to the end of the text.
"""
import logging
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


PERSONAL_INFO = "personal_info"
ACCOUNTS = "accounts"
COLLECTIONS = "collections"
PUBLIC_RECORDS = "public_records"
INQUIRIES = "inquiries"
ACCOUNT_SUMMARY = "account_summary"

# Ordered header variants per section (lower-case)
SECTION_HEADERS: Dict[str, List[str]] = {
    PERSONAL_INFO: [
        "personal information",
        "consumer information",
        "personal data",
        "identification information",
        "personal identification",
    ],
    ACCOUNTS: [
        "account information",
        "credit accounts",
        "account details",
        "tradeline information",
        "credit information",
        "accounts",
    ],
    COLLECTIONS: [
        "collection accounts",
        "collection information",
        "collections",
    ],
    PUBLIC_RECORDS: [
        "public records",
        "public record information",
        "court records",
    ],
    INQUIRIES: [
        "credit inquiries",
        "inquiry information",
        "inquiries",
    ],
    ACCOUNT_SUMMARY: [
        "account summary",
        "credit summary",
        "summary",
    ],
}

# Content must be longer than header + this many characters to count
MIN_CONTENT_PADDING = 50

ALL_HEADERS = [header for headers in SECTION_HEADERS.values() for header in headers]


def _next_header_start(lowered: str, after: int) -> int:
    """Earliest position of any section header at or after `after`."""
    nearest = len(lowered)
    for header in ALL_HEADERS:
        idx = lowered.find(header, after)
        if idx != -1 and idx < nearest:
            nearest = idx
    return nearest


def _locate(text: str, lowered: str, headers: List[str]) -> Optional[Tuple[str, str]]:
    for header in headers:
        start = lowered.find(header)
        if start == -1:
            continue
        end = _next_header_start(lowered, start + len(header))
        content = text[start:end].strip()
        if len(content) > len(header) + MIN_CONTENT_PADDING:
            return header, content
        logger.debug(f"Header '{header}' rejected: only {len(content)} chars of content")
    return None


def segment_sections(text: str) -> Dict[str, str]:
    """
    Split document text into named sections.

    Returns {section_name: content} for every section whose header was
    found with enough content behind it. Content includes the header line.
    """
    if not text:
        return {}
    lowered = text.lower()
    sections: Dict[str, str] = {}
    for name, headers in SECTION_HEADERS.items():
        located = _locate(text, lowered, headers)
        if located:
            header, content = located
            sections[name] = content
            logger.debug(f"Section {name} via '{header}' ({len(content)} chars)")

    logger.info(f"Segmented {len(sections)} sections: {sorted(sections)}")
    return sections


def section_body(content: str) -> str:
    """Section content without its header line."""
    if "\n" not in content:
        return ""
    return content.split("\n", 1)[1]
