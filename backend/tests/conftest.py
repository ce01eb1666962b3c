"""Shared fixtures: an isolated in-memory SQLite database per test."""
import pytest
from sqlalchemy.orm import sessionmaker

from app.config import IngestionConfig
from app.database import Base, build_engine
from app.models import db_models  # noqa: F401


TRANSUNION_REPORT_TEXT = """TRANSUNION CREDIT REPORT
TransUnion LLC
www.transunion.com
File Number: 123456789

Personal Information
Name: JOHN Q CONSUMER
SSN: XXX-XX-1234
Date of Birth: 01/15/1980
Address: 123 MAIN ST, SPRINGFIELD, IL 62701

Credit Score: 712

Account Information
Account 1
CAPITAL ONE BANK
Account #: ****1234
Account Type: Credit Card
Date Opened: 03/15/2019
Balance: $1,250.00
Credit Limit: $5,000
Account Status: Open
Payment Status: Current

Account 2
WELLS FARGO HOME MORTGAGE
Account #: ****9876
Account Type: Mortgage
Date Opened: 06/01/2015
Balance: $185,000
High Balance: $220,000
Account Status: Open
Payment Status: 30 days late

Public Records
None reported in this section of the report file for this consumer.

Credit Inquiries
DISCOVER BANK 02/10/2024
AUTO LENDER INC 11/05/2023
CAPITAL ONE 01/20/2023
"""


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config():
    return IngestionConfig(
        internal_api_key="test-internal-key",
        scrape_api_base="https://scrape.test/v2",
        scrape_api_key="test-scrape-key",
    )


@pytest.fixture
def report_text():
    return TRANSUNION_REPORT_TEXT
