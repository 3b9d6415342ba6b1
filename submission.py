import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from draft_state import compute_totals, ensure_valid
from formatting import format_currency
from models import InvoiceDraft, SubmissionReceipt

logger = logging.getLogger(__name__)

class PersistError(Exception):
    """Raised when a submitted invoice could not be handed to its sink"""
    pass

class InvoiceSink(ABC):
    """Destination for submitted invoices"""

    @abstractmethod
    def persist(self, draft: InvoiceDraft) -> str:
        """Store the invoice and return its identifier"""

class LoggingInvoiceSink(InvoiceSink):
    """Acknowledges submissions in the log without storing them"""

    def persist(self, draft: InvoiceDraft) -> str:
        totals = compute_totals(draft)
        logger.info(
            f"Invoice {draft.invoice_number} submitted for {draft.client_name}: "
            f"{len(draft.line_items)} item(s), total {format_currency(totals.total, draft.currency)}"
        )
        return draft.invoice_number

def submit_draft(draft: InvoiceDraft, sink: InvoiceSink) -> SubmissionReceipt:
    """Validate the draft and hand it to the sink"""
    ensure_valid(draft)

    try:
        invoice_id = sink.persist(draft)
    except PersistError:
        raise
    except Exception as e:
        logger.error(f"Error persisting invoice {draft.invoice_number}: {str(e)}")
        raise PersistError(f"Failed to save invoice {draft.invoice_number}") from e

    totals = compute_totals(draft)
    return SubmissionReceipt(
        invoice_id=invoice_id,
        invoice_number=draft.invoice_number,
        total=format_currency(totals.total, draft.currency),
        balance_due=format_currency(totals.balance_due, draft.currency),
        submitted_at=datetime.now(timezone.utc),
    )
