import logging
from urllib.parse import quote

from draft_state import compute_totals
from formatting import format_currency, format_display_date
from models import InvoiceDraft, InvoiceEmail, IssuerProfile

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves as-is
URI_COMPONENT_SAFE = "-_.!~*'()"

def email_subject(draft: InvoiceDraft, issuer: IssuerProfile) -> str:
    return f"Invoice {draft.invoice_number} from {issuer.name}"

def email_body(draft: InvoiceDraft, issuer: IssuerProfile) -> str:
    total = format_currency(compute_totals(draft).total, draft.currency)
    due_date = format_display_date(draft.due_date)
    return (
        f"Dear {draft.client_name},\n"
        f"\n"
        f"Please find attached your invoice {draft.invoice_number} for {total}.\n"
        f"\n"
        f"Payment is due by {due_date}.\n"
        f"\n"
        f"Thank you for your business!\n"
        f"\n"
        f"{issuer.name}"
    )

def mailto_url(recipient: str, subject: str, body: str) -> str:
    return (
        f"mailto:{recipient}"
        f"?subject={quote(subject, safe=URI_COMPONENT_SAFE)}"
        f"&body={quote(body, safe=URI_COMPONENT_SAFE)}"
    )

def compose_invoice_email(draft: InvoiceDraft, issuer: IssuerProfile) -> InvoiceEmail:
    """Prefill the email offering the invoice to the client"""
    subject = email_subject(draft, issuer)
    body = email_body(draft, issuer)
    email = InvoiceEmail(
        recipient=draft.email,
        subject=subject,
        body=body,
        mailto_url=mailto_url(draft.email, subject, body),
    )
    logger.info(f"Composed email for invoice {draft.invoice_number}")
    return email
