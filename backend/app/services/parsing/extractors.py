"""
Report Normalizer - Field Extractors

Every field is resolved by an ordered list of matchers. A matcher takes the
text block and returns the captured value or None; the first non-None result
wins. Values are coerced with the scalar normalizers so a field that cannot
be read becomes None instead of raising.
"""
from __future__ import annotations
import logging
import re
from typing import Callable, Dict, List, Optional

from ...models.canonical import (
    Account, AccountCategory, Bureau, Collection, ConsumerStatement,
    Inquiry, InquiryType, PublicRecord, Score,
)
from .normalizers import clean_text, normalize_date, normalize_money, parse_score

logger = logging.getLogger(__name__)


Matcher = Callable[[str], Optional[str]]


def regex_matcher(pattern: str, flags: int = re.IGNORECASE, group: int = 1) -> Matcher:
    compiled = re.compile(pattern, flags)

    def match(text: str) -> Optional[str]:
        found = compiled.search(text)
        if not found:
            return None
        return clean_text(found.group(group))

    return match


def first_match(text: str, matchers: List[Matcher]) -> Optional[str]:
    """Run matchers in order and return the first value found."""
    for matcher in matchers:
        value = matcher(text)
        if value:
            return value
    return None


# =============================================================================
# SHARED PATTERNS
# =============================================================================

DATE = r"(\d{1,2}/\d{1,2}/\d{2,4})"
MONEY = r"(\(?-?\$?\s?-?[\d,]+(?:\.\d{1,2})?\)?)"
REST_OF_LINE = r"([^\n]+)"

NEGATIVE_KEYWORDS = [
    "charged off", "charge off", "charge-off", "chargeoff",
    "collection", "late", "delinquent",
    "30 days", "60 days", "90 days", "120 days",
    "past due", "default",
]

REAL_ESTATE_HINTS = ["mortgage", "real estate", "home equity", "heloc"]
REVOLVING_HINTS = ["credit card", "revolving", "charge card", "line of credit"]


# =============================================================================
# PERSONAL INFORMATION
# =============================================================================

PERSONAL_FIELDS: Dict[str, List[Matcher]] = {
    "name": [
        regex_matcher(r"consumer name:?[ \t]*([A-Za-z][A-Za-z .,'-]+)"),
        regex_matcher(r"\bname:?[ \t]*([A-Za-z][A-Za-z .,'-]+)"),
        regex_matcher(r"^([A-Z][A-Z .'-]{4,})$", re.MULTILINE),
    ],
    "ssn": [
        regex_matcher(r"((?:\*{3}-\*{2}-|XXX-XX-)\d{4})"),
        regex_matcher(r"(?:ssn|social security(?: number)?):?[ \t]*([\dX*-]{4,11})"),
    ],
    "date_of_birth": [
        regex_matcher(r"(?:date of birth|birth date|dob):?[ \t]*" + DATE),
        regex_matcher(r"(?:born|birth):?[ \t]*" + DATE),
        regex_matcher(r"(?:year of birth|birth year):?[ \t]*(\d{4})"),
    ],
    "address": [
        regex_matcher(r"(?:current address|address):?[ \t]*" + REST_OF_LINE),
        regex_matcher(r"(\d+\s+[A-Za-z0-9 .,'#-]{5,80}?\b[A-Z]{2}\s+\d{5}(?:-\d{4})?)", 0),
    ],
    "phone": [
        regex_matcher(r"(?:phone|telephone):?[ \t]*(\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4})"),
    ],
    "employer": [
        regex_matcher(r"employer:?[ \t]*" + REST_OF_LINE),
    ],
}


def extract_personal_info(text: str) -> Dict[str, Optional[str]]:
    fields: Dict[str, Optional[str]] = {}
    for name, matchers in PERSONAL_FIELDS.items():
        value = first_match(text, matchers)
        if name == "date_of_birth" and value and "/" in value:
            value = normalize_date(value) or value
        if value:
            fields[name] = value
    return fields


# =============================================================================
# ACCOUNTS
# =============================================================================

ACCOUNT_SPLITTERS: Dict[Bureau, re.Pattern] = {
    Bureau.EQUIFAX: re.compile(r"\n(?=[A-Z\s]{3,}(?:BANK|CARD|CREDIT|LOAN|MORT))"),
    Bureau.EXPERIAN: re.compile(r"\n\s*\n(?=\S)"),
    Bureau.TRANSUNION: re.compile(r"\n\s*Account\s+\d+|^Account\s+\d+", re.IGNORECASE | re.MULTILINE),
    # Blank lines, or the line break before a creditor line followed by "Account Number/#"
    Bureau.UNKNOWN: re.compile(
        r"\n\s*\n|\n(?=[^\n]+\n[ \t]*Account\s*(?:Number|#))", re.IGNORECASE
    ),
}

MIN_BLOCK_LENGTH = 50

ACCOUNT_FIELDS: Dict[str, List[Matcher]] = {
    "account_number_mask": [
        regex_matcher(r"(?:account number|acct\s*#|account\s*#):?[ \t]*([*\dXx-]{4,})"),
        regex_matcher(r"#[ \t]*(\d+[*\dXx-]*)"),
        regex_matcher(r"(\*+\d{4})"),
    ],
    "account_type": [
        regex_matcher(r"(?:account type|type of account|loan type):?[ \t]*" + REST_OF_LINE),
        regex_matcher(r"\btype:[ \t]*" + REST_OF_LINE),
        regex_matcher(r"(credit card|mortgage|auto loan|personal loan|student loan|home equity|installment|revolving)"),
    ],
    "opened_on": [
        regex_matcher(r"(?:date opened|opened on|open date|opened):?[ \t]*" + DATE),
    ],
    "reported_on": [
        regex_matcher(r"(?:date reported|last reported|reported on|reported):?[ \t]*" + DATE),
    ],
    "closed_on": [
        regex_matcher(r"(?:date closed|closed on|closed):?[ \t]*" + DATE),
    ],
    "last_activity_on": [
        regex_matcher(r"(?:date of last activity|last activity|last active):?[ \t]*" + DATE),
    ],
    "balance": [
        regex_matcher(r"current balance:?[ \t]*" + MONEY),
        regex_matcher(r"^[ \t]*balance:?[ \t]*" + MONEY, re.IGNORECASE | re.MULTILINE),
        regex_matcher(r"(?<!high )(?<!highest )balance:?[ \t]*" + MONEY),
    ],
    "high_balance": [
        regex_matcher(r"(?:high balance|highest balance|high credit):?[ \t]*" + MONEY),
    ],
    "credit_limit": [
        regex_matcher(r"(?:credit limit|limit):?[ \t]*" + MONEY),
    ],
    "past_due": [
        regex_matcher(r"(?:amount past due|past due amount|past due):?[ \t]*" + MONEY),
    ],
    "account_status": [
        regex_matcher(r"account status:?[ \t]*" + REST_OF_LINE),
        regex_matcher(r"(?<!payment )\bstatus:[ \t]*" + REST_OF_LINE),
    ],
    "payment_status": [
        regex_matcher(r"(?:payment status|pay status):?[ \t]*" + REST_OF_LINE),
    ],
    "remarks": [
        regex_matcher(r"(?:remarks?|comments?):?[ \t]*" + REST_OF_LINE),
    ],
}

MONEY_FIELDS = {"balance", "high_balance", "credit_limit", "past_due"}
DATE_FIELDS = {"opened_on", "reported_on", "closed_on", "last_activity_on"}

NUMBERING_RE = re.compile(r"^\s*(?:\d+[.)]|#\d+)\s*")
CREDITOR_LABEL_MATCHERS: List[Matcher] = [
    regex_matcher(r"^[ \t]*(?:creditor name|creditor|company name):[ \t]*" + REST_OF_LINE, re.IGNORECASE | re.MULTILINE),
]


def split_account_blocks(text: str, bureau: Bureau) -> List[str]:
    """Split an accounts section into per-tradeline blocks."""
    splitter = ACCOUNT_SPLITTERS.get(bureau, ACCOUNT_SPLITTERS[Bureau.UNKNOWN])
    blocks = [block for block in splitter.split(text) if block]
    return [block for block in blocks if len(block.strip()) > MIN_BLOCK_LENGTH]


def is_negative(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in NEGATIVE_KEYWORDS)


def categorize(account_type: Optional[str], block: str = "") -> AccountCategory:
    hint = (account_type or block or "").lower()
    if any(word in hint for word in REAL_ESTATE_HINTS):
        return AccountCategory.REAL_ESTATE
    if any(word in hint for word in REVOLVING_HINTS):
        return AccountCategory.REVOLVING
    return AccountCategory.OTHER


def extract_creditor(block: str) -> Optional[str]:
    """Labelled creditor, else the first non-blank line without list numbering."""
    labelled = first_match(block, CREDITOR_LABEL_MATCHERS)
    if labelled:
        return labelled
    for line in block.splitlines():
        line = NUMBERING_RE.sub("", line).strip(" \t:-.")
        if line:
            return line
    return None


def extract_account(block: str, bureau: str = "", position: int = 0) -> Optional[Account]:
    """
    Read one tradeline block. Blocks without a usable creditor name (more than
    two characters) are discarded.
    """
    creditor = extract_creditor(block)
    if not creditor or len(creditor) <= 2:
        return None

    values = {name: first_match(block, matchers) for name, matchers in ACCOUNT_FIELDS.items()}
    for name in MONEY_FIELDS:
        values[name] = normalize_money(values[name])
    for name in DATE_FIELDS:
        values[name] = normalize_date(values[name])

    remarks = values.pop("remarks")
    account = Account(
        bureau=bureau,
        creditor=creditor,
        account_number_mask=values.pop("account_number_mask") or "",
        remarks=[r.strip() for r in remarks.split(";") if r.strip()] if remarks else [],
        is_negative=is_negative(block),
        position=position,
        **values,
    )
    account.category = categorize(account.account_type, block)
    return account


def extract_accounts(text: str, bureau: Bureau) -> List[Account]:
    bureau_name = bureau.value if bureau != Bureau.UNKNOWN else ""
    accounts = []
    for block in split_account_blocks(text, bureau):
        account = extract_account(block, bureau_name, position=len(accounts))
        if account:
            accounts.append(account)
    return accounts


# =============================================================================
# INQUIRIES
# =============================================================================

INQUIRY_LINE_RE = re.compile(r"^\s*([A-Z][A-Za-z0-9&.,'/ -]{2,40}?)[\s:,-]+" + DATE)
INQUIRY_SKIP = {"inquiries", "credit inquiries", "inquiry information", "date", "creditor"}


def extract_inquiries(text: str, bureau: str = "") -> List[Inquiry]:
    inquiries = []
    for line in text.splitlines():
        match = INQUIRY_LINE_RE.match(line)
        if not match:
            continue
        creditor = clean_text(match.group(1))
        if not creditor or creditor.lower() in INQUIRY_SKIP:
            continue
        lowered = line.lower()
        kind = InquiryType.SOFT if ("soft" in lowered or "promotional" in lowered) else InquiryType.HARD
        inquiries.append(Inquiry(
            bureau=bureau,
            creditor=creditor,
            inquired_on=normalize_date(match.group(2)),
            inquiry_type=kind,
            position=len(inquiries),
        ))
    return inquiries


# =============================================================================
# COLLECTIONS
# =============================================================================

BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")

COLLECTION_FIELDS: Dict[str, List[Matcher]] = {
    "original_creditor": [
        regex_matcher(r"original creditor:?[ \t]*" + REST_OF_LINE),
    ],
    "amount": [
        regex_matcher(r"(?:amount|balance|original amount):?[ \t]*" + MONEY),
    ],
    "account_number_mask": ACCOUNT_FIELDS["account_number_mask"],
    "assigned_on": [
        regex_matcher(r"(?:date assigned|assigned|date opened|opened):?[ \t]*" + DATE),
    ],
    "status": [
        regex_matcher(r"status:?[ \t]*" + REST_OF_LINE),
    ],
}


def split_blocks(text: str) -> List[str]:
    return [block for block in BLOCK_SPLIT_RE.split(text) if block.strip()]


def extract_collections(text: str, bureau: str = "") -> List[Collection]:
    collections = []
    for block in split_blocks(text):
        agency = extract_creditor(block)
        if not agency or len(agency) <= 2:
            continue
        values = {name: first_match(block, matchers) for name, matchers in COLLECTION_FIELDS.items()}
        if values["amount"] is None and values["account_number_mask"] is None:
            # A lone line of prose, not a collection entry
            continue
        collections.append(Collection(
            bureau=bureau,
            agency=agency,
            original_creditor=values["original_creditor"],
            amount=normalize_money(values["amount"]),
            account_number_mask=values["account_number_mask"] or "",
            assigned_on=normalize_date(values["assigned_on"]),
            status=values["status"],
            position=len(collections),
        ))
    return collections


# =============================================================================
# PUBLIC RECORDS
# =============================================================================

PUBLIC_RECORD_FIELDS: Dict[str, List[Matcher]] = {
    "record_type": [
        regex_matcher(r"(?:record type|type):?[ \t]*" + REST_OF_LINE),
        regex_matcher(r"(bankruptcy(?: chapter \d+)?|chapter \d+|civil judgment|judgment|tax lien|lien|foreclosure)"),
    ],
    "filed_on": [
        regex_matcher(r"(?:date filed|filing date|filed):?[ \t]*" + DATE),
    ],
    "amount": [
        regex_matcher(r"(?:amount|liability):?[ \t]*" + MONEY),
    ],
    "court": [
        regex_matcher(r"court:?[ \t]*" + REST_OF_LINE),
    ],
    "reference_number": [
        regex_matcher(r"(?:case|docket|reference)\s*(?:number|#|no\.?):?[ \t]*([\w-]+)"),
    ],
    "status": [
        regex_matcher(r"status:?[ \t]*" + REST_OF_LINE),
    ],
}


def extract_public_records(text: str, bureau: str = "") -> List[PublicRecord]:
    records = []
    for block in split_blocks(text):
        values = {name: first_match(block, matchers) for name, matchers in PUBLIC_RECORD_FIELDS.items()}
        if not values["record_type"]:
            continue
        records.append(PublicRecord(
            bureau=bureau,
            record_type=values["record_type"],
            filed_on=normalize_date(values["filed_on"]),
            amount=normalize_money(values["amount"]),
            court=values["court"],
            reference_number=values["reference_number"],
            status=values["status"],
            position=len(records),
        ))
    return records


# =============================================================================
# SCORES & CONSUMER STATEMENT
# =============================================================================

SCORE_LINE_RE = re.compile(r"(?:fico|vantagescore|credit)?\s*score\b[^\d\n]{0,25}(\d{3})\b", re.IGNORECASE)

STATEMENT_MATCHERS: List[Matcher] = [
    regex_matcher(r"consumer statement:?[ \t]*" + REST_OF_LINE),
    regex_matcher(r"personal statement:?[ \t]*" + REST_OF_LINE),
]


def extract_scores(text: str, bureau: str = "") -> List[Score]:
    """
    First score-looking token in the document. A bureau named on the same
    line overrides the document bureau.
    """
    match = SCORE_LINE_RE.search(text)
    if not match:
        return []
    line_start = text.rfind("\n", 0, match.start()) + 1
    line_end = text.find("\n", match.end())
    line = text[line_start:line_end if line_end != -1 else len(text)]
    line_bureau, _ = parse_score(line)
    _, score = parse_score(match.group(1))
    return [Score(bureau=line_bureau or bureau, score=score, position=0)]


def extract_consumer_statement(text: str, bureau: str = "") -> ConsumerStatement:
    statement = first_match(text, STATEMENT_MATCHERS)
    return ConsumerStatement(bureau=bureau, statement=statement, position=0)
