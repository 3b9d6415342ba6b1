import asyncio
import base64
from urllib.parse import unquote

import pytest

from draft_state import DraftValidationError, SetLogo, reduce_draft, set_field
from exports import (
    ExportError, PreviewNotFoundError, RenderError, export_email, export_pdf, export_print
)
from mailer import compose_invoice_email, mailto_url
from models import IssuerProfile
from pdf_generator import invoice_filename, render_invoice_pdf
from preview import build_preview

# 1x1 transparent PNG
PNG_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

def test_invoice_filename():
    assert invoice_filename("INV-0042") == "Invoice-INV-0042.pdf"

class TestPdfGenerator:
    def test_renders_a_pdf(self, valid_draft, output_dir):
        pdf_path = render_invoice_pdf(build_preview(valid_draft), output_dir)
        assert pdf_path.parent == output_dir
        assert pdf_path.read_bytes().startswith(b"%PDF")

    def test_unsafe_invoice_numbers_stay_inside_output_dir(self, valid_draft, output_dir):
        draft = set_field(valid_draft, "invoice_number", "../../INV/7")
        pdf_path = render_invoice_pdf(build_preview(draft), output_dir)
        assert pdf_path.parent == output_dir

    def test_markup_in_text_is_escaped(self, valid_draft, output_dir):
        draft = set_field(valid_draft, "client_name", "Smith & <Sons>")
        draft = set_field(draft, "notes", "Line one\nLine <two> & three")
        pdf_path = render_invoice_pdf(build_preview(draft), output_dir)
        assert pdf_path.exists()

    def test_renders_with_logo(self, valid_draft, output_dir, tmp_path):
        logo = tmp_path / "logo.png"
        logo.write_bytes(PNG_PIXEL)
        draft = reduce_draft(valid_draft, SetLogo(logo_path=str(logo)))
        pdf_path = render_invoice_pdf(build_preview(draft), output_dir)
        assert pdf_path.read_bytes().startswith(b"%PDF")

    def test_missing_logo_falls_back_to_issuer_name(self, valid_draft, output_dir, tmp_path):
        draft = reduce_draft(valid_draft, SetLogo(logo_path=str(tmp_path / "gone.png")))
        pdf_path = render_invoice_pdf(build_preview(draft), output_dir)
        assert pdf_path.exists()

    def test_unreadable_logo_falls_back_to_issuer_name(self, valid_draft, output_dir, tmp_path):
        logo = tmp_path / "logo.png"
        logo.write_bytes(b"not really a png")
        draft = reduce_draft(valid_draft, SetLogo(logo_path=str(logo)))
        pdf_path = render_invoice_pdf(build_preview(draft), output_dir)
        assert pdf_path.read_bytes().startswith(b"%PDF")

class TestExportAdapters:
    def test_export_pdf(self, valid_draft, output_dir):
        pdf_path = asyncio.run(export_pdf(valid_draft, build_preview(valid_draft), output_dir))
        assert pdf_path.read_bytes().startswith(b"%PDF")

    def test_export_print(self, valid_draft, output_dir):
        pdf_path = asyncio.run(export_print(valid_draft, build_preview(valid_draft), output_dir))
        assert pdf_path.exists()

    @pytest.mark.parametrize("export", [export_pdf, export_print])
    def test_missing_preview_is_reported(self, valid_draft, output_dir, export):
        with pytest.raises(PreviewNotFoundError):
            asyncio.run(export(valid_draft, None, output_dir))
        assert not output_dir.exists()

    def test_preview_not_found_is_an_export_error(self):
        assert issubclass(PreviewNotFoundError, ExportError)

    def test_invalid_draft_is_not_exported(self, valid_draft, output_dir):
        draft = set_field(valid_draft, "email", "not-an-email")
        with pytest.raises(DraftValidationError):
            asyncio.run(export_pdf(draft, build_preview(draft), output_dir))

    def test_renderer_failure_is_wrapped(self, valid_draft, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(RenderError):
            asyncio.run(export_pdf(valid_draft, build_preview(valid_draft), blocker / "pdfs"))

class TestEmail:
    def test_subject_and_body(self, valid_draft):
        email = export_email(valid_draft)
        assert email.recipient == "jane@clientco.io"
        assert email.subject == "Invoice INV-0042 from Humai Webs"
        assert email.body == (
            "Dear Jane Client,\n\n"
            "Please find attached your invoice INV-0042 for $250.00.\n\n"
            "Payment is due by November 18, 2026.\n\n"
            "Thank you for your business!\n\n"
            "Humai Webs"
        )

    def test_total_includes_tax_and_discount(self, valid_draft):
        draft = set_field(valid_draft, "tax_rate", 10)
        draft = set_field(draft, "discount", 5)
        draft = set_field(draft, "currency", "EUR")
        assert "for €262.50." in export_email(draft).body

    def test_mailto_url(self, valid_draft):
        email = compose_invoice_email(valid_draft, IssuerProfile(name="Studio North"))
        assert email.mailto_url.startswith("mailto:jane@clientco.io?subject=")
        query = email.mailto_url.split("?", 1)[1]
        subject, body = query.split("&body=")
        assert unquote(subject[len("subject="):]) == "Invoice INV-0042 from Studio North"
        assert unquote(body) == email.body

    def test_mailto_encodes_like_uri_components(self):
        url = mailto_url("a@b.io", "Invoice & more", "Line 1\nLine (2)!")
        assert url == "mailto:a@b.io?subject=Invoice%20%26%20more&body=Line%201%0ALine%20(2)!"

    def test_invalid_draft_is_not_emailed(self, valid_draft):
        draft = set_field(valid_draft, "email", "not-an-email")
        with pytest.raises(DraftValidationError):
            export_email(draft)
