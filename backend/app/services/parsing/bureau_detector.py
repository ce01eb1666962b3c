"""
Bureau detection for scanned-document text.

Only the head of the document is inspected; bureau branding, URLs, support
lines and report-id labels all live on the first page.
"""
import logging
from typing import Dict, List

from ...models.canonical import Bureau, BureauDetection, DetectionConfidence

logger = logging.getLogger(__name__)


DETECTION_WINDOW = 1000

# Disjoint signature phrases per bureau (lower-case)
BUREAU_SIGNATURES: Dict[Bureau, List[str]] = {
    Bureau.EQUIFAX: [
        "equifax credit report",
        "equifax information services",
        "www.equifax.com",
        "1-800-685-1111",
        "equifax inc",
    ],
    Bureau.EXPERIAN: [
        "experian credit report",
        "experian information solutions",
        "www.experian.com",
        "1-888-397-3742",
        "report number:",
        "experian plc",
    ],
    Bureau.TRANSUNION: [
        "transunion credit report",
        "transunion llc",
        "www.transunion.com",
        "1-800-916-8800",
        "file number:",
    ],
}


def _confidence_for(count: int) -> DetectionConfidence:
    if count >= 2:
        return DetectionConfidence.HIGH
    if count == 1:
        return DetectionConfidence.MEDIUM
    return DetectionConfidence.LOW


def detect_bureau(text: str) -> BureauDetection:
    """
    Score the document head against each bureau's signature phrases.

    The bureau with strictly the most matches wins. A tie or no matches at
    all gives Unknown with low confidence. Matched indicators are always
    reported.
    """
    head = (text or "")[:DETECTION_WINDOW].lower()

    counts: Dict[Bureau, int] = {}
    indicators: List[str] = []
    for bureau, phrases in BUREAU_SIGNATURES.items():
        counts[bureau] = 0
        for phrase in phrases:
            if phrase in head:
                counts[bureau] += 1
                indicators.append(f"Found {bureau.value} indicator: {phrase}")

    best = max(counts.values())
    leaders = [bureau for bureau, count in counts.items() if count == best]

    if best == 0 or len(leaders) > 1:
        summary = ", ".join(f"{b.value}={c}" for b, c in counts.items())
        logger.info(f"Bureau undetermined ({summary})")
        return BureauDetection(
            bureau=Bureau.UNKNOWN,
            confidence=DetectionConfidence.LOW,
            indicators=indicators,
        )

    winner = leaders[0]
    confidence = _confidence_for(best)
    logger.info(f"Detected bureau {winner.value} ({confidence.value}, {best} indicators)")
    return BureauDetection(bureau=winner, confidence=confidence, indicators=indicators)
