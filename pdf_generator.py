import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from xml.sax.saxutils import escape
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT

from models import InvoicePreview

logger = logging.getLogger(__name__)

BRAND_COLOR = HexColor('#005587')
LOGO_HEIGHT = 0.6 * inch

def invoice_filename(invoice_number: str) -> str:
    """Download name for an exported invoice"""
    return f"Invoice-{invoice_number}.pdf"

def _safe_stem(invoice_number: str) -> str:
    return re.sub(r'[^A-Za-z0-9_-]+', '_', invoice_number) or "invoice"

def _text(value: str) -> str:
    # Paragraph parses markup, and keeps line breaks only as <br/>
    return escape(value).replace('\n', '<br/>')

def _logo(logo_path: str):
    path = Path(logo_path)
    if not path.exists():
        logger.warning(f"Logo file not found, using issuer name instead: {logo_path}")
        return None
    try:
        width, height = ImageReader(str(path)).getSize()
    except Exception as e:
        logger.warning(f"Logo file is not a readable image, using issuer name instead: {logo_path} ({e})")
        return None
    return Image(str(path), width=LOGO_HEIGHT * width / height, height=LOGO_HEIGHT)

def render_invoice_pdf(preview: InvoicePreview, output_dir: Path) -> Path:
    """Render the invoice preview to an A4 PDF inside output_dir"""
    output_dir.mkdir(parents=True, exist_ok=True)
    pdf_filename = f"{_safe_stem(preview.invoice_number)}_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')}.pdf"
    pdf_path = output_dir / pdf_filename

    doc = SimpleDocTemplate(
        str(pdf_path),
        pagesize=A4,
        rightMargin=54,
        leftMargin=54,
        topMargin=54,
        bottomMargin=36,
        title=f"Invoice {preview.invoice_number}",
    )

    # Container for the 'Flowable' objects
    elements = []

    # Define styles
    styles = getSampleStyleSheet()
    brand_style = ParagraphStyle(
        'Brand',
        parent=styles['Heading2'],
        textColor=BRAND_COLOR,
    )
    title_style = ParagraphStyle(
        'InvoiceTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=BRAND_COLOR,
        alignment=TA_RIGHT,
    )
    label_style = ParagraphStyle(
        'Label',
        parent=styles['Normal'],
        fontSize=9,
        textColor=HexColor('#6B7280'),
        spaceAfter=4,
    )
    right_style = ParagraphStyle(
        'RightAlign',
        parent=styles['Normal'],
        alignment=TA_RIGHT,
    )
    right_label_style = ParagraphStyle(
        'RightLabel',
        parent=label_style,
        alignment=TA_RIGHT,
    )
    heading_style = ParagraphStyle(
        'CustomHeading',
        parent=styles['Heading3'],
        spaceAfter=6,
    )
    footer_style = ParagraphStyle(
        'Footer',
        parent=label_style,
        alignment=TA_CENTER,
    )
    normal_style = styles['Normal']

    # Header: logo or issuer name on the left, invoice title and dates on the right
    brand = _logo(preview.logo_path) if preview.logo_path else None
    if brand is None:
        brand = Paragraph(_text(preview.issuer.name), brand_style)

    header_right = [
        Paragraph("INVOICE", title_style),
        Paragraph(f"#{_text(preview.invoice_number)}", right_style),
        Paragraph(f"Date: {preview.invoice_date}", right_style),
        Paragraph(f"Due: {preview.due_date}", right_style),
    ]
    header_table = Table([[brand, header_right]], colWidths=[3.4*inch, 3.4*inch])
    header_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))
    elements.append(header_table)
    elements.append(Spacer(1, 0.3*inch))

    # Bill To / From blocks
    bill_to = [Paragraph("Bill To:", label_style)]
    for index, line in enumerate(preview.bill_to):
        text = f"<b>{_text(line)}</b>" if index == 0 else _text(line)
        bill_to.append(Paragraph(text, normal_style))

    issuer = preview.issuer
    issuer_lines = [issuer.name] + [line.strip() for line in issuer.address.splitlines() if line.strip()]
    issuer_lines += [value for value in (issuer.email, issuer.phone) if value]
    from_block = [Paragraph("From:", right_label_style)]
    for index, line in enumerate(issuer_lines):
        text = f"<b>{_text(line)}</b>" if index == 0 else _text(line)
        from_block.append(Paragraph(text, right_style))

    parties_table = Table([[bill_to, from_block]], colWidths=[3.4*inch, 3.4*inch])
    parties_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))
    elements.append(parties_table)
    elements.append(Spacer(1, 0.3*inch))

    # Items Table
    items_data = [['Description', 'Service Type', preview.quantity_label, preview.rate_label, 'Amount']]
    for row in preview.rows:
        items_data.append([
            Paragraph(_text(row.description), normal_style),
            Paragraph(_text(row.service_type), normal_style),
            row.quantity,
            row.rate,
            row.amount,
        ])

    items_table = Table(items_data, colWidths=[2.3*inch, 1.6*inch, 0.8*inch, 1*inch, 1.1*inch], repeatRows=1)
    items_table.setStyle(TableStyle([
        # Header row
        ('BACKGROUND', (0, 0), (-1, 0), HexColor('#F3F4F6')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (-1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 0), (-1, -1), 0.5, HexColor('#E5E7EB')),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.3*inch))

    # Payment Summary
    summary_data = [[f"{row.label}:", row.value] for row in preview.summary]
    summary_table = Table(summary_data, colWidths=[1.6*inch, 1.4*inch], hAlign='RIGHT')
    summary_style = [
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]
    for index, row in enumerate(preview.summary):
        if row.label == "Total":
            summary_style.append(('LINEABOVE', (0, index), (-1, index), 1, colors.black))
            summary_style.append(('LINEBELOW', (0, index), (-1, index), 1, colors.black))
        if row.emphasis:
            summary_style.append(('FONTNAME', (0, index), (-1, index), 'Helvetica-Bold'))
            summary_style.append(('TEXTCOLOR', (0, index), (-1, index), BRAND_COLOR))
    summary_table.setStyle(TableStyle(summary_style))
    elements.append(summary_table)
    elements.append(Spacer(1, 0.4*inch))

    # Notes
    if preview.notes:
        elements.append(Paragraph("Notes:", heading_style))
        elements.append(Paragraph(_text(preview.notes), normal_style))
        elements.append(Spacer(1, 0.2*inch))

    # Payment Information
    if issuer.payment_information:
        elements.append(Paragraph("Payment Information:", heading_style))
        for line in issuer.payment_information:
            elements.append(Paragraph(_text(line), normal_style))

    # Footer
    if preview.payment_terms:
        elements.append(Spacer(1, 0.4*inch))
        elements.append(Paragraph(f"Payment Terms: {_text(preview.payment_terms)}", footer_style))

    # Build PDF
    doc.build(elements)

    logger.info(f"Generated PDF invoice: {pdf_path}")
    return pdf_path
