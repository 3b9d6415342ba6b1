import logging
from pathlib import Path
from typing import Optional

from config import config
from draft_state import ensure_valid
from mailer import compose_invoice_email
from models import InvoiceDraft, InvoiceEmail, InvoicePreview, IssuerProfile
from pdf_generator import render_invoice_pdf
from preview import default_issuer

logger = logging.getLogger(__name__)

class ExportError(Exception):
    """Base class for export failures reported to the caller"""
    pass

class PreviewNotFoundError(ExportError):
    """Raised when an export needs the preview but none is shown"""
    pass

class RenderError(ExportError):
    """Raised when the document renderer fails"""
    pass

def _require_preview(preview: Optional[InvoicePreview]) -> InvoicePreview:
    if preview is None:
        raise PreviewNotFoundError("Invoice preview is not available. Open the preview tab and try again.")
    return preview

async def _render(preview: InvoicePreview, output_dir: Optional[Path]) -> Path:
    try:
        return render_invoice_pdf(preview, output_dir or Path(config.PDF_OUTPUT_DIR))
    except Exception as e:
        logger.error(f"Error generating PDF: {str(e)}")
        raise RenderError(f"Failed to render invoice {preview.invoice_number}") from e

async def export_pdf(draft: InvoiceDraft, preview: Optional[InvoicePreview], output_dir: Path = None) -> Path:
    """Render the shown preview to a PDF for download"""
    ensure_valid(draft)
    preview = _require_preview(preview)
    pdf_path = await _render(preview, output_dir)
    logger.info(f"Exported invoice {preview.invoice_number} as PDF")
    return pdf_path

async def export_print(draft: InvoiceDraft, preview: Optional[InvoicePreview], output_dir: Path = None) -> Path:
    """Render the shown preview to a PDF for the print dialog"""
    ensure_valid(draft)
    preview = _require_preview(preview)
    pdf_path = await _render(preview, output_dir)
    logger.info(f"Prepared invoice {preview.invoice_number} for printing")
    return pdf_path

def export_email(draft: InvoiceDraft, issuer: IssuerProfile = None) -> InvoiceEmail:
    """Compose the mailto hand-off for the draft"""
    ensure_valid(draft)
    return compose_invoice_email(draft, issuer or default_issuer())
