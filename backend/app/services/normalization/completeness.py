"""Three-bureau completeness check for scrape-sourced reports."""
from dataclasses import dataclass, field
from typing import List

from ...models.canonical import Bureau, CreditReport


@dataclass
class CompletenessResult:
    missing_bureaus: List[str] = field(default_factory=list)
    bureaus_seen: List[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.missing_bureaus)


def check_completeness(report: CreditReport) -> CompletenessResult:
    """Which of the three required bureaus have a score on the report."""
    seen = set()
    for score in report.scores:
        if score.score is None:
            continue
        bureau = Bureau.from_text(score.bureau)
        if bureau:
            seen.add(bureau)

    required = Bureau.required()
    return CompletenessResult(
        missing_bureaus=[b.value.lower() for b in required if b not in seen],
        bureaus_seen=[b.value.lower() for b in required if b in seen],
    )
