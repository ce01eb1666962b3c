"""
Section-label canonicalization for scrape payloads.

Scraped list labels are noisy ("Consumer Stateme", "Inquiries Credit
Inquiries", "Real Estate Account"), so labels are matched against an ordered
list of anchored patterns. First match wins.
"""
import re
from typing import List, Tuple


CREDIT_SCORES = "credit_scores"
PERSONAL_INFORMATION = "personal_information"
CONSUMER_STATEMENTS = "consumer_statements"
ACCOUNTS_REAL_ESTATE = "accounts.real_estate"
ACCOUNTS_REVOLVING = "accounts.revolving"
ACCOUNTS_OTHER = "accounts.other"
PUBLIC_RECORDS = "public_records"
COLLECTIONS = "collections"
INQUIRIES = "inquiries"
CREDITOR_ADDRESSES = "creditor_addresses"

ALIAS_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"^credit\s*scores?", re.I), CREDIT_SCORES),
    (re.compile(r"^personal\s*inform", re.I), PERSONAL_INFORMATION),
    (re.compile(r"^consumer\s*stat", re.I), CONSUMER_STATEMENTS),
    (re.compile(r"^real\s*estate(\s*accounts?)?", re.I), ACCOUNTS_REAL_ESTATE),
    (re.compile(r"^revolving(\s*accounts?)?", re.I), ACCOUNTS_REVOLVING),
    (re.compile(r"^(other|installment)(\s*accounts?)?", re.I), ACCOUNTS_OTHER),
    (re.compile(r"^public\s*(informations?|records?)", re.I), PUBLIC_RECORDS),
    (re.compile(r"^collections?(\s*accounts?)?", re.I), COLLECTIONS),
    (re.compile(r"^(inquiries|inquiry)", re.I), INQUIRIES),
    (re.compile(r"^creditors?\s*(addresses|contacts?)", re.I), CREDITOR_ADDRESSES),
]

CANONICAL_SECTIONS = {canonical for _, canonical in ALIAS_RULES}


def canonicalize(label: str) -> str:
    """Canonical section id for a raw label. Unmatched labels come back unchanged."""
    key = (label or "").strip()
    for pattern, canonical in ALIAS_RULES:
        if pattern.search(key):
            return canonical
    return label


def is_canonical(name: str) -> bool:
    return name in CANONICAL_SECTIONS
