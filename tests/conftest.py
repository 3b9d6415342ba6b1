import os
import tempfile
import uuid
from datetime import date
from pathlib import Path

import pytest

# Application modules read their settings at import time
TEST_DIR = Path(tempfile.mkdtemp(prefix="invoice-drafts-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DIR / 'drafts.db'}"
os.environ["UPLOAD_DIR"] = str(TEST_DIR / "uploads")
os.environ["PDF_OUTPUT_DIR"] = str(TEST_DIR / "pdfs")
os.environ["LOG_FILE"] = str(TEST_DIR / "test.log")
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["EXPORT_RATE_LIMIT_PER_HOUR"] = "10000"
os.environ["DEFAULT_CURRENCY"] = "USD"
os.environ["DEFAULT_PAYMENT_TERMS"] = "Net 30"
os.environ["DUE_DAYS"] = "30"
os.environ["DEFAULT_NOTES"] = "Thank you for your business!"
os.environ["ISSUER_NAME"] = "Humai Webs"
os.environ["ISSUER_ADDRESS"] = "Office 1A, IK Tower\nIslamabad 44810"
os.environ["ISSUER_EMAIL"] = "info@humaiwebs.com"
os.environ["ISSUER_PHONE"] = "+1 234 567 8900"
os.environ["ISSUER_ACCOUNT_TITLE"] = "HumAi Online Marketing"
os.environ["ISSUER_ACCOUNT_NUMBER"] = "0000000000"
os.environ["ISSUER_BANK"] = "Test Bank"

from draft_state import new_draft, set_field, update_line_item  # noqa: E402

TODAY = date(2026, 10, 19)

@pytest.fixture
def draft():
    return new_draft(today=TODAY, invoice_number="INV-0042")

@pytest.fixture
def valid_draft(draft):
    fields = {
        "client_name": "Jane Client",
        "company_name": "Client Co",
        "email": "jane@clientco.io",
        "phone": "0300 1234567",
        "billing_address": "12 High Street\nLondon",
    }
    for name, value in fields.items():
        draft = set_field(draft, name, value)
    item_id = draft.line_items[0].id
    draft = update_line_item(draft, item_id, "description", "Landing page")
    draft = update_line_item(draft, item_id, "quantity", 10)
    draft = update_line_item(draft, item_id, "rate", 25)
    return draft

@pytest.fixture
def session_id():
    return f"test-{uuid.uuid4()}"

@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "pdfs"
