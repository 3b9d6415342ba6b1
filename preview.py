import logging
from typing import List

from config import config
from draft_state import compute_totals
from formatting import format_currency, format_display_date, format_number
from models import InvoiceDraft, InvoicePreview, IssuerProfile, PreviewRow, SummaryRow

logger = logging.getLogger(__name__)

COLUMN_LABELS = {
    "hourly": ("Hours", "Rate/Hour"),
    "item": ("Qty", "Rate"),
}

def default_issuer() -> IssuerProfile:
    """Issuer profile from configuration"""
    return IssuerProfile(
        name=config.ISSUER_NAME,
        address=config.ISSUER_ADDRESS,
        email=config.ISSUER_EMAIL,
        phone=config.ISSUER_PHONE,
        payment_information=config.payment_information,
    )

def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]

def build_bill_to(draft: InvoiceDraft) -> List[str]:
    bill_to = [draft.client_name]
    if draft.company_name:
        bill_to.append(draft.company_name)
    bill_to.extend(_lines(draft.billing_address))
    bill_to.extend(value for value in (draft.email, draft.phone) if value)
    return bill_to

def build_summary(draft: InvoiceDraft) -> List[SummaryRow]:
    totals = compute_totals(draft)
    money = lambda amount: format_currency(amount, draft.currency)

    summary = [SummaryRow(label="Subtotal", value=money(totals.subtotal))]
    if draft.tax_rate > 0:
        summary.append(SummaryRow(
            label=f"Tax ({format_number(draft.tax_rate)}%)",
            value=money(totals.tax_amount)
        ))
    if draft.discount > 0:
        summary.append(SummaryRow(
            label=f"Discount ({format_number(draft.discount)}%)",
            value=f"-{money(totals.discount_amount)}"
        ))
    summary.append(SummaryRow(label="Total", value=money(totals.total)))
    summary.append(SummaryRow(label="Amount Paid", value=money(totals.paid_amount)))
    summary.append(SummaryRow(label="Balance Due", value=money(totals.balance_due), emphasis=True))
    return summary

def build_preview(draft: InvoiceDraft, issuer: IssuerProfile = None) -> InvoicePreview:
    """Render the draft into the values shown on the invoice preview.

    Dates are formatted here, so a malformed invoice or due date raises
    InvalidDateError and only this render step fails.
    """
    issuer = issuer or default_issuer()
    quantity_label, rate_label = COLUMN_LABELS[draft.pricing_mode]

    rows = [
        PreviewRow(
            description=item.description,
            service_type=item.service_type,
            quantity=format_number(item.quantity),
            rate=format_currency(item.rate, draft.currency),
            amount=format_currency(item.total, draft.currency),
        )
        for item in draft.line_items
    ]

    preview = InvoicePreview(
        invoice_number=draft.invoice_number,
        invoice_date=format_display_date(draft.invoice_date),
        due_date=format_display_date(draft.due_date),
        issuer=issuer,
        bill_to=build_bill_to(draft),
        quantity_label=quantity_label,
        rate_label=rate_label,
        rows=rows,
        summary=build_summary(draft),
        notes=draft.notes,
        payment_terms=draft.payment_terms,
        logo_path=draft.logo_path,
    )
    logger.debug(f"Built preview for invoice {draft.invoice_number}")
    return preview
