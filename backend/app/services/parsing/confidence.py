"""Parse confidence scoring (0-100, advisory only)."""
from ...models.canonical import DetectionConfidence

BUREAU_POINTS = {
    DetectionConfidence.HIGH: 30,
    DetectionConfidence.MEDIUM: 20,
    DetectionConfidence.LOW: 10,
}
POINTS_PER_SECTION = 8
MAX_SECTION_POINTS = 40
POINTS_PER_ACCOUNT = 3
MAX_ACCOUNT_POINTS = 30


def score_confidence(bureau_confidence: DetectionConfidence, sections_found: int, accounts_parsed: int) -> int:
    score = BUREAU_POINTS.get(bureau_confidence, BUREAU_POINTS[DetectionConfidence.LOW])
    score += min(MAX_SECTION_POINTS, POINTS_PER_SECTION * max(0, sections_found))
    score += min(MAX_ACCOUNT_POINTS, POINTS_PER_ACCOUNT * max(0, accounts_parsed))
    return min(100, score)
