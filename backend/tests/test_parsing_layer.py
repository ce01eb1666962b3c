"""
Tests for the scanned-document parsing layer.

Covers:
1. Bureau detection (strict maximum, ties -> Unknown)
2. Section label canonicalization
3. Section segmentation and header-only rejection
4. Field extractors (accounts, personal info, inquiries, collections, public records)
5. Confidence scoring bounds
6. Full text parse
"""
import pytest

from app.models.canonical import (
    AccountCategory, Bureau, DetectionConfidence, InquiryType, NONE_REPORTED,
)
from app.services.parsing import aliases
from app.services.parsing.bureau_detector import detect_bureau
from app.services.parsing.confidence import score_confidence
from app.services.parsing.extractors import (
    categorize,
    extract_account,
    extract_accounts,
    extract_collections,
    extract_consumer_statement,
    extract_inquiries,
    extract_personal_info,
    extract_public_records,
    extract_scores,
    is_negative,
    split_account_blocks,
)
from app.services.parsing.segmenter import segment_sections, section_body
from app.services.parsing.text_parser import CreditReportTextParser, parse_report_text


# =============================================================================
# TEST: BUREAU DETECTION
# =============================================================================

class TestBureauDetection:
    """Tests for detect_bureau."""

    def test_strict_maximum_wins_with_high_confidence(self):
        text = (
            "Experian Credit Report\n"
            "Visit www.experian.com for details\n"
            "Some tradelines were also furnished to TransUnion LLC\n"
        )
        detection = detect_bureau(text)
        assert detection.bureau == Bureau.EXPERIAN
        assert detection.confidence == DetectionConfidence.HIGH
        assert len(detection.indicators) == 3

    def test_single_indicator_is_medium(self):
        detection = detect_bureau("Questions? Call Equifax Inc today.")
        assert detection.bureau == Bureau.EQUIFAX
        assert detection.confidence == DetectionConfidence.MEDIUM

    def test_tie_is_unknown(self):
        detection = detect_bureau("www.equifax.com and www.experian.com")
        assert detection.bureau == Bureau.UNKNOWN
        assert detection.confidence == DetectionConfidence.LOW
        assert len(detection.indicators) == 2

    def test_no_indicators_is_unknown_low(self):
        detection = detect_bureau("A generic consumer document.")
        assert detection.bureau == Bureau.UNKNOWN
        assert detection.confidence == DetectionConfidence.LOW
        assert detection.indicators == []

    def test_only_document_head_is_inspected(self):
        text = "x" * 1200 + " www.transunion.com transunion llc"
        assert detect_bureau(text).bureau == Bureau.UNKNOWN

    def test_case_insensitive(self):
        assert detect_bureau("TRANSUNION CREDIT REPORT / FILE NUMBER: 1").bureau == Bureau.TRANSUNION


# =============================================================================
# TEST: ALIASES
# =============================================================================

class TestAliasCanonicalizer:
    """Tests for captured-list label canonicalization."""

    @pytest.mark.parametrize("label,expected", [
        ("Credit Score", aliases.CREDIT_SCORES),
        ("credit scores", aliases.CREDIT_SCORES),
        ("Personal Information", aliases.PERSONAL_INFORMATION),
        ("Personal Inform", aliases.PERSONAL_INFORMATION),
        ("Consumer Stateme", aliases.CONSUMER_STATEMENTS),
        ("Consumer Statement", aliases.CONSUMER_STATEMENTS),
        ("Real Estate Accounts", aliases.ACCOUNTS_REAL_ESTATE),
        ("Real Estate Account", aliases.ACCOUNTS_REAL_ESTATE),
        ("Revolving Accounts", aliases.ACCOUNTS_REVOLVING),
        ("Other Accounts", aliases.ACCOUNTS_OTHER),
        ("Installment Accounts", aliases.ACCOUNTS_OTHER),
        ("Public Information", aliases.PUBLIC_RECORDS),
        ("Collections", aliases.COLLECTIONS),
        ("Inquiries Credit Inquiries", aliases.INQUIRIES),
        ("Creditors Addresses", aliases.CREDITOR_ADDRESSES),
    ])
    def test_noisy_labels(self, label, expected):
        assert aliases.canonicalize(label) == expected

    def test_unmatched_label_passes_through(self):
        assert aliases.canonicalize("Account Summary Table") == "Account Summary Table"
        assert not aliases.is_canonical("Account Summary Table")

    def test_first_rule_wins(self):
        # Starts like a score list even though it mentions inquiries later
        assert aliases.canonicalize("Credit Score and Inquiries") == aliases.CREDIT_SCORES


# =============================================================================
# TEST: SEGMENTATION
# =============================================================================

class TestSegmenter:
    """Tests for segment_sections."""

    def test_finds_sections_and_bounds_them(self, report_text):
        sections = segment_sections(report_text)
        assert set(sections) == {"personal_info", "accounts", "public_records", "inquiries"}
        assert sections["accounts"].startswith("Account Information")
        assert "Public Records" not in sections["accounts"]
        assert sections["inquiries"].rstrip().endswith("CAPITAL ONE 01/20/2023")

    def test_header_only_match_is_rejected(self):
        text = "Inquiries\nNone\n"
        assert segment_sections(text) == {}

    def test_falls_back_to_later_header_variant(self):
        text = (
            "Credit Accounts\n"
            "ABC BANK Account #: ****1111 Balance: $100 Account Status: Open, pays as agreed\n"
        )
        sections = segment_sections(text)
        assert sections["accounts"].startswith("Credit Accounts")

    def test_empty_text(self):
        assert segment_sections("") == {}

    def test_section_body_drops_header_line(self):
        assert section_body("Collections\nMIDLAND") == "MIDLAND"
        assert section_body("Collections") == ""


# =============================================================================
# TEST: ACCOUNT EXTRACTION
# =============================================================================

class TestAccountExtraction:
    """Tests for account block splitting and field extraction."""

    def test_transunion_blocks(self, report_text):
        body = section_body(segment_sections(report_text)["accounts"])
        blocks = split_account_blocks(body, Bureau.TRANSUNION)
        assert len(blocks) == 2

    def test_extract_accounts_fields(self, report_text):
        body = section_body(segment_sections(report_text)["accounts"])
        accounts = extract_accounts(body, Bureau.TRANSUNION)

        card, mortgage = accounts
        assert card.creditor == "CAPITAL ONE BANK"
        assert card.account_number_mask == "****1234"
        assert card.balance == 1250.0
        assert card.credit_limit == 5000.0
        assert card.opened_on == "2019-03-15T00:00:00Z"
        assert card.category == AccountCategory.REVOLVING
        assert card.bureau == "TransUnion"
        assert card.is_negative is False

        assert mortgage.creditor == "WELLS FARGO HOME MORTGAGE"
        assert mortgage.balance == 185000.0
        assert mortgage.high_balance == 220000.0
        assert mortgage.category == AccountCategory.REAL_ESTATE
        assert mortgage.is_negative is True
        assert mortgage.position == 1

    def test_experian_blank_line_blocks(self):
        body = (
            "DISCOVER CARD SERVICES\nAccount Number: 6011XXXX1234\nBalance: $300\nStatus: Open\n"
            "\n"
            "TOYOTA MOTOR CREDIT\nAccount Number: 7788XXXX0001\nType: Auto Loan\nBalance: $12,400\n"
        )
        accounts = extract_accounts(body, Bureau.EXPERIAN)
        assert [a.creditor for a in accounts] == ["DISCOVER CARD SERVICES", "TOYOTA MOTOR CREDIT"]
        assert accounts[1].category == AccountCategory.OTHER

    def test_unknown_bureau_account_number_blocks(self):
        body = (
            "CAPITAL ONE BANK\nAccount #: ****1234\nBalance: $1,250\nStatus: Open and current\n"
            "DISCOVER FINANCIAL SERVICES\nAccount #: ****5555\nBalance: $800\nStatus: Charge-off\n"
        )
        accounts = extract_accounts(body, Bureau.UNKNOWN)

        assert [a.creditor for a in accounts] == ["CAPITAL ONE BANK", "DISCOVER FINANCIAL SERVICES"]
        assert [a.account_number_mask for a in accounts] == ["****1234", "****5555"]
        assert accounts[0].is_negative is False
        assert accounts[1].is_negative is True

    def test_unknown_bureau_account_number_label(self):
        body = (
            "TOYOTA MOTOR CREDIT\nAccount Number: 7788XXXX0001\nType: Auto Loan\nBalance: $12,400\n"
            "SANTANDER CONSUMER USA\nAccount Number: 9911XXXX0002\nType: Auto Loan\nBalance: $9,100\n"
        )
        blocks = split_account_blocks(body, Bureau.UNKNOWN)
        assert len(blocks) == 2
        assert blocks[1].startswith("SANTANDER CONSUMER USA")

    def test_equifax_creditor_line_blocks(self):
        body = (
            "CHASE BANK\nAccount #: ****4321\nBalance: $2,000\nDate Opened: 01/01/2018\n"
            "CITI CARD\nAccount #: ****8765\nBalance: $150\nDate Opened: 05/05/2020\n"
        )
        blocks = split_account_blocks(body, Bureau.EQUIFAX)
        assert len(blocks) == 2

    def test_short_blocks_are_ignored(self):
        assert split_account_blocks("ABC\n\nDEF", Bureau.EXPERIAN) == []

    def test_block_without_creditor_is_discarded(self):
        assert extract_account("\n  \n12\n") is None
        assert extract_account("AB\nBalance: $100") is None

    def test_numbering_is_stripped_from_creditor(self):
        account = extract_account("1. AMERICAN EXPRESS\nAccount #: ****0005\nBalance: $10")
        assert account.creditor == "AMERICAN EXPRESS"

    def test_highest_balance_is_not_current_balance(self):
        account = extract_account("SOME BANK\nHighest Balance: $900\nBalance: $100\n")
        assert account.balance == 100.0
        assert account.high_balance == 900.0

    def test_unreadable_fields_become_none(self):
        account = extract_account("SOME CREDITOR\nBalance: n/a\nDate Opened: 13/40/2020\n")
        assert account.balance is None
        assert account.opened_on is None

    @pytest.mark.parametrize("text", [
        "Status: Charged off", "COLLECTION ACCOUNT", "paid late", "90 days past due",
        "Delinquent", "in default",
    ])
    def test_negative_keywords(self, text):
        assert is_negative(text)

    def test_positive_account(self):
        assert not is_negative("Open. Pays as agreed.")

    def test_categorize(self):
        assert categorize("Home Equity Line") == AccountCategory.REAL_ESTATE
        assert categorize("Revolving") == AccountCategory.REVOLVING
        assert categorize("Student Loan") == AccountCategory.OTHER
        assert categorize(None, "this is a MORTGAGE account") == AccountCategory.REAL_ESTATE


# =============================================================================
# TEST: OTHER EXTRACTORS
# =============================================================================

class TestOtherExtractors:
    """Tests for personal info, inquiries, collections, public records, scores."""

    def test_personal_info(self, report_text):
        body = section_body(segment_sections(report_text)["personal_info"])
        info = extract_personal_info(body)
        assert info["name"] == "JOHN Q CONSUMER"
        assert info["ssn"] == "XXX-XX-1234"
        assert info["date_of_birth"] == "1980-01-15T00:00:00Z"
        assert info["address"] == "123 MAIN ST, SPRINGFIELD, IL 62701"

    def test_inquiries(self):
        text = "DISCOVER BANK 02/10/2024\nPROMO OFFERS LLC 01/01/2024 promotional\nnot an inquiry line"
        inquiries = extract_inquiries(text, "Experian")
        assert [i.creditor for i in inquiries] == ["DISCOVER BANK", "PROMO OFFERS LLC"]
        assert inquiries[0].inquired_on == "2024-02-10T00:00:00Z"
        assert inquiries[0].inquiry_type == InquiryType.HARD
        assert inquiries[1].inquiry_type == InquiryType.SOFT
        assert inquiries[1].bureau == "Experian"

    def test_collections(self):
        text = (
            "MIDLAND CREDIT MANAGEMENT\nOriginal Creditor: SYNCHRONY BANK\n"
            "Amount: $1,234\nDate Assigned: 04/01/2022\nStatus: Unpaid\n"
            "\n"
            "Collections are reported for seven years.\n"
        )
        collections = extract_collections(text, "Equifax")
        assert len(collections) == 1
        collection = collections[0]
        assert collection.agency == "MIDLAND CREDIT MANAGEMENT"
        assert collection.original_creditor == "SYNCHRONY BANK"
        assert collection.amount == 1234.0
        assert collection.assigned_on == "2022-04-01T00:00:00Z"

    def test_public_records(self):
        text = (
            "Bankruptcy Chapter 7\nDate Filed: 08/15/2016\nCourt: US Bankruptcy Court ND IL\n"
            "Case Number: 16-12345\nStatus: Discharged\n"
        )
        records = extract_public_records(text)
        assert len(records) == 1
        assert records[0].record_type == "Bankruptcy Chapter 7"
        assert records[0].filed_on == "2016-08-15T00:00:00Z"
        assert records[0].reference_number == "16-12345"

    def test_scores_with_document_bureau(self, report_text):
        scores = extract_scores(report_text, "TransUnion")
        assert len(scores) == 1
        assert scores[0].bureau == "TransUnion"
        assert scores[0].score == 712

    def test_scores_out_of_range_kept_as_none(self):
        scores = extract_scores("Credit Score: 999", "")
        assert scores[0].score is None

    def test_consumer_statement_sentinel(self):
        assert extract_consumer_statement("nothing here").statement == NONE_REPORTED
        statement = extract_consumer_statement("Consumer Statement: I dispute the late payment.")
        assert statement.statement == "I dispute the late payment."


# =============================================================================
# TEST: CONFIDENCE
# =============================================================================

class TestConfidence:
    """Tests for score_confidence."""

    def test_components(self):
        assert score_confidence(DetectionConfidence.HIGH, 0, 0) == 30
        assert score_confidence(DetectionConfidence.MEDIUM, 2, 1) == 20 + 16 + 3
        assert score_confidence(DetectionConfidence.LOW, 0, 0) == 10

    def test_caps(self):
        assert score_confidence(DetectionConfidence.LOW, 100, 0) == 10 + 40
        assert score_confidence(DetectionConfidence.LOW, 0, 100) == 10 + 30

    @pytest.mark.parametrize("bureau", list(DetectionConfidence))
    @pytest.mark.parametrize("sections", [0, 3, 6, 50])
    @pytest.mark.parametrize("accounts", [0, 5, 10, 500])
    def test_bounded(self, bureau, sections, accounts):
        assert 0 <= score_confidence(bureau, sections, accounts) <= 100

    def test_max_is_100(self):
        assert score_confidence(DetectionConfidence.HIGH, 6, 10) == 100


# =============================================================================
# TEST: FULL TEXT PARSE
# =============================================================================

class TestTextParser:
    """Tests for CreditReportTextParser."""

    def test_parse_report(self, report_text):
        result = parse_report_text(report_text)

        assert result.bureau.bureau == Bureau.TRANSUNION
        assert result.bureau.confidence == DetectionConfidence.HIGH
        assert len(result.sections) == 4
        assert len(result.accounts) == 2
        assert len(result.inquiries) == 3
        assert result.counts == {"collections": 0, "public_records": 0, "inquiries": 3}
        assert result.scores[0].score == 712
        assert result.consumer_statements[0].statement == NONE_REPORTED
        # 30 (high) + 4 sections * 8 + 2 accounts * 3
        assert result.confidence_score == 68
        assert "Section not found: collections" in result.warnings
        assert result.errors == []

    def test_empty_text_is_an_error(self):
        result = parse_report_text("   ")
        assert result.errors == ["No text to parse"]
        assert result.confidence_score == 0

    def test_section_failure_degrades_to_warning(self, report_text, monkeypatch):
        def boom(body, bureau):
            raise RuntimeError("bad block")

        monkeypatch.setattr("app.services.parsing.text_parser.extract_accounts", boom)
        result = CreditReportTextParser(report_text).parse()

        assert result.accounts == []
        assert any("Extraction failed for section accounts" in w for w in result.warnings)
        assert result.confidence_score == 30 + 32
        assert result.personal_info["name"] == "JOHN Q CONSUMER"

    def test_unknown_bureau_text(self):
        text = "Account Information\n" + "\n\n".join(
            f"CREDITOR {i} BANK\nAccount #: ****000{i}\nBalance: ${i}00\nStatus: Open and current" for i in range(1, 4)
        )
        result = parse_report_text(text)
        assert result.bureau.bureau == Bureau.UNKNOWN
        assert len(result.accounts) == 3
        assert all(a.bureau == "" for a in result.accounts)
