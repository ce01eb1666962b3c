"""
Report Normalizer - Canonical Model Builder

Both ingestion paths end here:

- captured lists from the scrape robot (label -> items)
- ParseResult from the scanned-document parser

and come out as one CreditReport. Money and date coercion and the
"NONE REPORTED" statement rule apply to both paths.
"""
from __future__ import annotations
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from bs4 import BeautifulSoup

from ...models.canonical import (
    Account, AccountCategory, Collection, ConsumerStatement, CreditReport,
    CreditorAddress, Inquiry, InquiryType, ParseResult, PersonalInformationBlock,
    PublicRecord, Score, serialize,
)
from ..parsing import aliases
from ..parsing.extractors import extract_account, is_negative
from ..parsing.normalizers import (
    clean_text, item_text, map_fields, normalize_date, normalize_money,
    parse_score, strip_html, unmapped_keys,
)

logger = logging.getLogger(__name__)


# =============================================================================
# FIELD ALIASES FOR CAPTURED-LIST ROWS
# =============================================================================

ACCOUNT_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "creditor": ["creditor", "Creditor", "creditorName", "Creditor Name", "name", "Name"],
    "account_number_mask": ["account_number_mask", "Mask", "mask", "Account #", "accountNumber", "Account Number"],
    "account_type": ["account_type", "Type", "type", "Account Type"],
    "balance": ["balance", "Balance", "current_balance", "Current Balance"],
    "high_balance": ["high_balance", "HighBalance", "High Balance", "highest_balance", "High Credit"],
    "credit_limit": ["credit_limit", "Limit", "limit", "Credit Limit"],
    "past_due": ["past_due", "PastDue", "Past Due", "amount_past_due"],
    "opened_on": ["opened_on", "Opened", "opened", "Date Opened"],
    "reported_on": ["reported_on", "Reported", "reported", "Last Reported", "Date Reported"],
    "closed_on": ["closed_on", "Closed", "closed", "Date Closed"],
    "last_activity_on": ["last_activity_on", "LastActivity", "Last Activity", "last_activity"],
    "account_status": ["account_status", "Status", "Account Status"],
    "payment_status": ["payment_status", "PaymentStatus", "Payment Status"],
    "remarks": ["remarks", "Remarks", "comments", "Comments"],
    "status": ["_STATUS", "status"],
    "position": ["Position", "position"],
}

SCORE_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "score": ["score", "Score"],
    "status": ["_STATUS", "status"],
    "position": ["Position", "position"],
}

STATEMENT_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "statement": ["text", "html", "statement", "Statement"],
    "status": ["_STATUS", "status"],
    "position": ["Position", "position"],
}

INQUIRY_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "creditor": ["creditor", "Creditor", "creditorName", "Creditor Name", "name", "Name", "text"],
    "inquired_on": ["inquired_on", "date", "Date", "Date of Inquiry", "inquiryDate"],
    "inquiry_type": ["inquiry_type", "type", "Type"],
    "position": ["Position", "position"],
}

COLLECTION_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "agency": ["agency", "Agency", "collector", "Collection Agency", "creditor", "Creditor", "name"],
    "original_creditor": ["original_creditor", "Original Creditor", "originalCreditor"],
    "amount": ["amount", "Amount", "balance", "Balance"],
    "account_number_mask": ["account_number_mask", "Mask", "mask", "Account #", "accountNumber"],
    "assigned_on": ["assigned_on", "Date Assigned", "assigned", "Opened", "opened"],
    "status": ["status", "Status", "_STATUS"],
    "position": ["Position", "position"],
}

PUBLIC_RECORD_FIELD_ALIASES: Dict[str, List[str]] = {
    "bureau": ["bureau", "Bureau"],
    "record_type": ["record_type", "type", "Type", "Record Type", "text"],
    "filed_on": ["filed_on", "Date Filed", "filed", "Filed", "date"],
    "amount": ["amount", "Amount", "liability", "Liability"],
    "court": ["court", "Court"],
    "reference_number": ["reference_number", "Reference #", "case_number", "Case Number"],
    "status": ["status", "Status", "_STATUS"],
    "position": ["Position", "position"],
}

CREDITOR_ADDRESS_FIELD_ALIASES: Dict[str, List[str]] = {
    "creditor": ["creditor", "Creditor", "name", "Name", "Creditor Name"],
    "address": ["address", "Address"],
    "phone": ["phone", "Phone", "telephone"],
}

ACCOUNT_BUCKETS = {
    aliases.ACCOUNTS_REAL_ESTATE: AccountCategory.REAL_ESTATE,
    aliases.ACCOUNTS_REVOLVING: AccountCategory.REVOLVING,
    aliases.ACCOUNTS_OTHER: AccountCategory.OTHER,
}

PERSONAL_INFO_SKIP_PREFIXES = ("_", "Position")


# =============================================================================
# HELPERS
# =============================================================================

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return clean_text(strip_html(value))


def _position(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _items(value: Any) -> List[Any]:
    """Items of one captured list; accepts a bare list or {items: [...]}."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        inner = value.get("items")
        if isinstance(inner, list):
            return inner
        return [value]
    if isinstance(value, list):
        return value
    return [value]


def _remarks(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [text for text in (_text(v) for v in value) if text]
    text = _text(value)
    if not text:
        return []
    return [part.strip() for part in text.split(";") if part.strip()]


def unwrap_captured_lists(payload: Any) -> Dict[str, Any]:
    """
    Normalize the shapes the robot produces into {label: value}:

        {"capturedLists": {label: [...]}}
        {"items": {label: [...]}}
        [{"name": label, "items": [...]}, ...]
        {label: [...]}
    """
    captured = payload
    if isinstance(payload, Mapping):
        if "capturedLists" in payload:
            captured = payload["capturedLists"]
        elif isinstance(payload.get("items"), (Mapping, list)):
            captured = payload["items"]

    if captured is None:
        return {}
    if isinstance(captured, list):
        lists: Dict[str, Any] = {}
        for entry in captured:
            if isinstance(entry, Mapping) and entry.get("name"):
                lists[str(entry["name"])] = entry.get("items", [])
        return lists
    if isinstance(captured, Mapping):
        return dict(captured)
    raise TypeError(f"captured lists must be an object or list, got {type(captured).__name__}")


def parse_creditor_contacts_html(html: str) -> List[CreditorAddress]:
    """Rows of a creditor contact table: name, address, phone."""
    if not html or "<" not in html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    contacts = []
    for row in soup.find_all("tr"):
        cells = [cell.get_text(" ", strip=True) for cell in row.find_all("td")]
        if len(cells) >= 2 and cells[0] and cells[1]:
            contacts.append(CreditorAddress(
                creditor=cells[0],
                address=cells[1],
                phone=cells[2] if len(cells) > 2 and cells[2] else None,
            ))
    return contacts


# =============================================================================
# BUILDER
# =============================================================================

class CanonicalModelBuilder:
    """
    Builds CreditReport aggregates.

    Usage:
        builder = CanonicalModelBuilder(version="v1")
        report = builder.from_captured_lists(run_id, user_id, collected_at, payload)
        report = builder.from_parse_result(run_id, user_id, collected_at, parse_result)
    """

    def __init__(self, version: str = "v1"):
        self.version = version

    # -------------------------------------------------------------------------
    # Scrape path
    # -------------------------------------------------------------------------

    def from_captured_lists(self, run_id: str, user_id: str, collected_at: str, payload: Any) -> CreditReport:
        report = CreditReport(
            run_id=run_id,
            user_id=user_id,
            collected_at=collected_at,
            version=self.version,
            raw_sections=copy.deepcopy(payload) if isinstance(payload, Mapping) else {"payload": copy.deepcopy(payload)},
        )

        lists = unwrap_captured_lists(payload)
        for label, value in lists.items():
            canonical = aliases.canonicalize(label)
            items = _items(value)

            if canonical == aliases.CREDIT_SCORES:
                report.scores.extend(self._scores(items, len(report.scores)))
            elif canonical == aliases.PERSONAL_INFORMATION:
                report.personal_information.extend(self._personal_information(items))
            elif canonical == aliases.CONSUMER_STATEMENTS:
                report.consumer_statements.extend(self._consumer_statements(items))
            elif canonical in ACCOUNT_BUCKETS:
                for account in self._accounts(items, ACCOUNT_BUCKETS[canonical], report.additional):
                    report.accounts.add(account)
            elif canonical == aliases.PUBLIC_RECORDS:
                report.public_records.extend(self._public_records(items))
            elif canonical == aliases.COLLECTIONS:
                report.collections.extend(self._collections(items))
            elif canonical == aliases.INQUIRIES:
                report.inquiries.extend(self._inquiries(items))
            elif canonical == aliases.CREDITOR_ADDRESSES:
                report.creditor_addresses.extend(self._creditor_addresses(items))
            else:
                logger.debug(f"Unrecognized captured list '{label}' kept under additional")
                report.additional[label] = value

        logger.info(f"Built report {run_id} from captured lists: {report.row_counts()}")
        return report

    def _scores(self, items: List[Any], offset: int) -> List[Score]:
        scores = []
        for idx, item in enumerate(items):
            row = item if isinstance(item, Mapping) else {}
            fields = map_fields(row, SCORE_FIELD_ALIASES)
            bureau, score = parse_score(item_text(item))
            if fields["score"] is not None:
                # An explicit score field wins over the scanned blurb
                _, score = parse_score(str(fields["score"]))
            if fields["bureau"]:
                bureau = parse_score(str(fields["bureau"]))[0] or str(fields["bureau"])
            scores.append(Score(
                bureau=bureau,
                score=score,
                status=_text(fields["status"]) or "",
                position=_position(fields["position"], offset + idx),
            ))
        return scores

    def _personal_information(self, items: List[Any]) -> List[PersonalInformationBlock]:
        blocks = []
        for idx, item in enumerate(items):
            if not isinstance(item, Mapping):
                blocks.append(PersonalInformationBlock(position=idx, fields={"text": _text(item)}))
                continue
            fields = {
                str(key): _text(value)
                for key, value in item.items()
                if not str(key).startswith(PERSONAL_INFO_SKIP_PREFIXES)
            }
            blocks.append(PersonalInformationBlock(
                position=_position(item.get("Position"), idx),
                status=_text(item.get("_STATUS")) or "",
                fields=fields,
            ))
        return blocks

    def _consumer_statements(self, items: List[Any]) -> List[ConsumerStatement]:
        statements = []
        for idx, item in enumerate(items):
            row = item if isinstance(item, Mapping) else {"text": item}
            fields = map_fields(row, STATEMENT_FIELD_ALIASES)
            statements.append(ConsumerStatement(
                bureau=_text(fields["bureau"]) or "",
                statement=_text(fields["statement"]),
                status=_text(fields["status"]) or "",
                position=_position(fields["position"], idx),
            ))
        return statements

    def _accounts(self, items: List[Any], category: AccountCategory, additional: Dict[str, Any]) -> List[Account]:
        accounts = []
        for idx, item in enumerate(items):
            if not isinstance(item, Mapping):
                # A raw text blob: read it like a scanned tradeline block
                account = extract_account(str(item), position=idx)
                if account:
                    account.category = category
                    accounts.append(account)
                continue

            fields = map_fields(item, ACCOUNT_FIELD_ALIASES)
            account = Account(
                bureau=_text(fields["bureau"]) or "",
                creditor=_text(fields["creditor"]) or "",
                account_number_mask=_text(fields["account_number_mask"]) or "",
                account_type=_text(fields["account_type"]),
                balance=normalize_money(fields["balance"]),
                high_balance=normalize_money(fields["high_balance"]),
                credit_limit=normalize_money(fields["credit_limit"]),
                past_due=normalize_money(fields["past_due"]),
                opened_on=normalize_date(fields["opened_on"]),
                reported_on=normalize_date(fields["reported_on"]),
                closed_on=normalize_date(fields["closed_on"]),
                last_activity_on=normalize_date(fields["last_activity_on"]),
                account_status=_text(fields["account_status"]),
                payment_status=_text(fields["payment_status"]),
                remarks=_remarks(fields["remarks"]),
                category=category,
                is_negative=is_negative(" ".join(str(value) for value in item.values() if value is not None)),
                status=_text(fields["status"]) or "",
                position=_position(fields["position"], idx),
            )
            extra = {key: item[key] for key in unmapped_keys(item, ACCOUNT_FIELD_ALIASES)}
            if extra:
                additional.setdefault("account_fields", []).append({
                    "creditor": account.creditor,
                    "category": category.value,
                    "position": account.position,
                    "fields": extra,
                })
            accounts.append(account)
        return accounts

    def _inquiries(self, items: List[Any]) -> List[Inquiry]:
        inquiries = []
        for idx, item in enumerate(items):
            row = item if isinstance(item, Mapping) else {"text": item}
            fields = map_fields(row, INQUIRY_FIELD_ALIASES)
            kind = str(fields["inquiry_type"] or "").lower()
            inquiries.append(Inquiry(
                bureau=_text(fields["bureau"]) or "",
                creditor=_text(fields["creditor"]) or "",
                inquired_on=normalize_date(fields["inquired_on"]),
                inquiry_type=InquiryType.SOFT if "soft" in kind or "promo" in kind else InquiryType.HARD,
                position=_position(fields["position"], idx),
            ))
        return inquiries

    def _collections(self, items: List[Any]) -> List[Collection]:
        collections = []
        for idx, item in enumerate(items):
            row = item if isinstance(item, Mapping) else {"agency": item}
            fields = map_fields(row, COLLECTION_FIELD_ALIASES)
            collections.append(Collection(
                bureau=_text(fields["bureau"]) or "",
                agency=_text(fields["agency"]) or "",
                original_creditor=_text(fields["original_creditor"]),
                amount=normalize_money(fields["amount"]),
                account_number_mask=_text(fields["account_number_mask"]) or "",
                assigned_on=normalize_date(fields["assigned_on"]),
                status=_text(fields["status"]),
                position=_position(fields["position"], idx),
            ))
        return collections

    def _public_records(self, items: List[Any]) -> List[PublicRecord]:
        records = []
        for idx, item in enumerate(items):
            row = item if isinstance(item, Mapping) else {"text": item}
            fields = map_fields(row, PUBLIC_RECORD_FIELD_ALIASES)
            records.append(PublicRecord(
                bureau=_text(fields["bureau"]) or "",
                record_type=_text(fields["record_type"]) or "",
                filed_on=normalize_date(fields["filed_on"]),
                amount=normalize_money(fields["amount"]),
                court=_text(fields["court"]),
                reference_number=_text(fields["reference_number"]),
                status=_text(fields["status"]),
                position=_position(fields["position"], idx),
            ))
        return records

    def _creditor_addresses(self, items: List[Any]) -> List[CreditorAddress]:
        addresses = []
        for item in items:
            html = item.get("html") if isinstance(item, Mapping) else item
            if isinstance(html, str) and "<tr" in html.lower():
                addresses.extend(parse_creditor_contacts_html(html))
                continue
            row = item if isinstance(item, Mapping) else {"creditor": item}
            fields = map_fields(row, CREDITOR_ADDRESS_FIELD_ALIASES)
            addresses.append(CreditorAddress(
                creditor=_text(fields["creditor"]) or "",
                address=_text(fields["address"]),
                phone=_text(fields["phone"]),
            ))
        return addresses

    # -------------------------------------------------------------------------
    # Scanned-document path
    # -------------------------------------------------------------------------

    def from_parse_result(self, run_id: str, user_id: str, collected_at: str, result: ParseResult) -> CreditReport:
        report = CreditReport(
            run_id=run_id,
            user_id=user_id,
            collected_at=collected_at,
            version=self.version,
            scores=list(result.scores),
            consumer_statements=list(result.consumer_statements),
            public_records=list(result.public_records),
            collections=list(result.collections),
            inquiries=list(result.inquiries),
            raw_sections=dict(result.sections),
            additional={
                "bureau_detection": serialize(result.bureau),
                "confidence_score": result.confidence_score,
                "warnings": list(result.warnings),
                "errors": list(result.errors),
            },
        )
        if result.personal_info:
            report.personal_information.append(PersonalInformationBlock(
                position=0,
                fields=dict(result.personal_info),
            ))
        for account in result.accounts:
            report.accounts.add(account)

        logger.info(f"Built report {run_id} from parsed text: {report.row_counts()}")
        return report
