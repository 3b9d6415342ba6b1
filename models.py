import uuid
from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "PKR": "₨",
}
FALLBACK_CURRENCY_SYMBOL = "$"

PAYMENT_TERMS = ("Net 7", "Net 15", "Net 30", "Net 60", "Due on Receipt")

SERVICE_TYPES = (
    "Website Development",
    "Graphics Designing",
    "SEO",
    "Mobile App Development",
)

PRICING_MODES = ("hourly", "item")

def new_line_item_id() -> str:
    return str(uuid.uuid4())

class LineItem(BaseModel):
    id: str = Field(default_factory=new_line_item_id)
    description: str = ""
    service_type: str = SERVICE_TYPES[0]
    quantity: float = 1.0
    rate: float = 0.0
    total: float = 0.0

class InvoiceDraft(BaseModel):
    client_name: str = ""
    company_name: str = ""
    email: str = ""
    phone: str = ""
    billing_address: str = ""
    invoice_number: str = ""
    invoice_date: str = ""
    due_date: str = ""
    payment_terms: str = "Net 30"
    tax_rate: float = 0.0
    discount: float = 0.0
    paid_amount: float = 0.0
    notes: str = ""
    currency: str = "USD"
    line_items: List[LineItem] = Field(default_factory=lambda: [LineItem()])
    pricing_mode: Literal["hourly", "item"] = "hourly"
    logo_path: Optional[str] = None

class InvoiceTotals(BaseModel):
    subtotal: float
    tax_amount: float
    discount_amount: float
    total: float
    paid_amount: float
    balance_due: float

class FieldError(BaseModel):
    field: str
    message: str

class IssuerProfile(BaseModel):
    name: str
    address: str = ""
    email: str = ""
    phone: str = ""
    payment_information: List[str] = []

class PreviewRow(BaseModel):
    description: str
    service_type: str
    quantity: str
    rate: str
    amount: str

class SummaryRow(BaseModel):
    label: str
    value: str
    emphasis: bool = False

class InvoicePreview(BaseModel):
    invoice_number: str
    invoice_date: str
    due_date: str
    issuer: IssuerProfile
    bill_to: List[str]
    quantity_label: str
    rate_label: str
    rows: List[PreviewRow]
    summary: List[SummaryRow]
    notes: str = ""
    payment_terms: str = ""
    logo_path: Optional[str] = None

class InvoiceEmail(BaseModel):
    recipient: str
    subject: str
    body: str
    mailto_url: str

class SubmissionReceipt(BaseModel):
    invoice_id: str
    invoice_number: str
    total: str
    balance_due: str
    submitted_at: datetime
