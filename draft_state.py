import math
import random
from datetime import date, timedelta
from typing import Annotated, Any, List, Optional, Union, Literal
from pydantic import BaseModel, Field
from email_validator import validate_email, EmailNotValidError

from config import config
from formatting import parse_iso_date, InvalidDateError
from models import (
    CURRENCY_SYMBOLS, PRICING_MODES,
    InvoiceDraft, InvoiceTotals, LineItem, FieldError
)

class InvalidActionError(Exception):
    """Raised when an action cannot be applied to a draft"""
    pass

class DraftValidationError(Exception):
    """Raised when a draft fails the submit-time rule set"""

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))

# Actions

class AddLineItem(BaseModel):
    type: Literal["add_line_item"] = "add_line_item"

class RemoveLineItem(BaseModel):
    type: Literal["remove_line_item"] = "remove_line_item"
    item_id: str

class UpdateLineItem(BaseModel):
    type: Literal["update_line_item"] = "update_line_item"
    item_id: str
    field: Literal["description", "service_type", "quantity", "rate"]
    value: Any = None

class SetField(BaseModel):
    type: Literal["set_field"] = "set_field"
    name: str
    value: Any = None

class SetLogo(BaseModel):
    type: Literal["set_logo"] = "set_logo"
    logo_path: Optional[str] = None

class ResetDraft(BaseModel):
    type: Literal["reset"] = "reset"

DraftAction = Annotated[
    Union[AddLineItem, RemoveLineItem, UpdateLineItem, SetField, SetLogo, ResetDraft],
    Field(discriminator="type")
]

# Actions a client may send directly; logos are attached through an upload
EditAction = Annotated[
    Union[AddLineItem, RemoveLineItem, UpdateLineItem, SetField, ResetDraft],
    Field(discriminator="type")
]

TEXT_FIELDS = {
    "client_name", "company_name", "email", "phone", "billing_address",
    "invoice_number", "invoice_date", "due_date", "payment_terms",
    "notes", "currency",
}
NUMBER_FIELDS = {"tax_rate", "discount", "paid_amount"}

def generate_invoice_number() -> str:
    return f"INV-{random.randint(0, 9999)}"

def new_draft(today: Optional[date] = None, invoice_number: Optional[str] = None) -> InvoiceDraft:
    """Build a draft with default values and a single empty line item"""
    today = today or date.today()
    return InvoiceDraft(
        invoice_number=invoice_number or generate_invoice_number(),
        invoice_date=today.isoformat(),
        due_date=(today + timedelta(days=config.DUE_DAYS)).isoformat(),
        payment_terms=config.DEFAULT_PAYMENT_TERMS,
        currency=config.DEFAULT_CURRENCY,
        notes=config.DEFAULT_NOTES,
        line_items=[LineItem()],
    )

def compute_totals(draft: InvoiceDraft) -> InvoiceTotals:
    """Derive subtotal, tax, discount, total and balance due from the draft"""
    subtotal = sum(item.total for item in draft.line_items)
    tax_amount = subtotal * draft.tax_rate / 100
    discount_amount = subtotal * draft.discount / 100
    total = subtotal + tax_amount - discount_amount
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total=total,
        paid_amount=draft.paid_amount,
        balance_due=total - draft.paid_amount,
    )

def _input_number(value: Any) -> float:
    # Number inputs report unparseable text as 0
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0

def _field_number(name: str, value: Any) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0.0
    if isinstance(value, bool):
        raise InvalidActionError(f"'{name}' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidActionError(f"'{name}' must be a number, got {value!r}")
    if not math.isfinite(number):
        raise InvalidActionError(f"'{name}' must be a finite number")
    return number

def _update_line_item(draft: InvoiceDraft, action: UpdateLineItem) -> InvoiceDraft:
    if not any(item.id == action.item_id for item in draft.line_items):
        return draft

    if action.field in ("quantity", "rate"):
        value = _input_number(action.value)
        if value < 0:
            raise InvalidActionError(f"Line item {action.field} cannot be negative")
    else:
        value = "" if action.value is None else str(action.value)

    items = []
    for item in draft.line_items:
        if item.id == action.item_id:
            updated = item.model_copy(update={action.field: value})
            if action.field in ("quantity", "rate"):
                updated = updated.model_copy(update={"total": updated.quantity * updated.rate})
            item = updated
        items.append(item)
    return draft.model_copy(update={"line_items": items})

def _set_field(draft: InvoiceDraft, action: SetField) -> InvoiceDraft:
    name = action.name
    if name in TEXT_FIELDS:
        value = "" if action.value is None else str(action.value)
    elif name in NUMBER_FIELDS:
        value = _field_number(name, action.value)
    elif name == "pricing_mode":
        if action.value not in PRICING_MODES:
            raise InvalidActionError(
                f"pricing_mode must be one of {', '.join(PRICING_MODES)}, got {action.value!r}"
            )
        value = action.value
    else:
        raise InvalidActionError(f"Unknown or read-only draft field '{name}'")
    return draft.model_copy(update={name: value})

def reduce_draft(draft: InvoiceDraft, action: DraftAction, defaults: Optional[InvoiceDraft] = None) -> InvoiceDraft:
    """Apply one action and return the resulting draft.

    Reset returns a copy of defaults, the draft the form was opened with,
    or a freshly generated draft when there is none.
    """
    if action.type == "add_line_item":
        item = LineItem(quantity=0.0, rate=0.0, total=0.0)
        return draft.model_copy(update={"line_items": [*draft.line_items, item]})

    elif action.type == "remove_line_item":
        # At least one line item must always remain
        if len(draft.line_items) <= 1:
            return draft
        remaining = [item for item in draft.line_items if item.id != action.item_id]
        if len(remaining) == len(draft.line_items):
            return draft
        return draft.model_copy(update={"line_items": remaining})

    elif action.type == "update_line_item":
        return _update_line_item(draft, action)

    elif action.type == "set_field":
        return _set_field(draft, action)

    elif action.type == "set_logo":
        return draft.model_copy(update={"logo_path": action.logo_path})

    elif action.type == "reset":
        if defaults is not None:
            return defaults.model_copy(deep=True)
        return new_draft()

    raise InvalidActionError(f"Unsupported action '{action.type}'")

def add_line_item(draft: InvoiceDraft) -> InvoiceDraft:
    return reduce_draft(draft, AddLineItem())

def remove_line_item(draft: InvoiceDraft, item_id: str) -> InvoiceDraft:
    return reduce_draft(draft, RemoveLineItem(item_id=item_id))

def update_line_item(draft: InvoiceDraft, item_id: str, field: str, value: Any) -> InvoiceDraft:
    return reduce_draft(draft, UpdateLineItem(item_id=item_id, field=field, value=value))

def set_field(draft: InvoiceDraft, name: str, value: Any) -> InvoiceDraft:
    return reduce_draft(draft, SetField(name=name, value=value))

def reset_draft(draft: InvoiceDraft, defaults: Optional[InvoiceDraft] = None) -> InvoiceDraft:
    return reduce_draft(draft, ResetDraft(), defaults=defaults)

def _is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True

def _check_date(errors: List[FieldError], field: str, value: str, label: str) -> None:
    if not value.strip():
        errors.append(FieldError(field=field, message=f"{label} is required"))
        return
    try:
        parse_iso_date(value)
    except InvalidDateError:
        errors.append(FieldError(field=field, message=f"{label} must be a valid date (YYYY-MM-DD)"))

def validate_draft(draft: InvoiceDraft) -> List[FieldError]:
    """Check the submit-time rules, returning one error per failing field"""
    errors: List[FieldError] = []

    if len(draft.client_name) < 2:
        errors.append(FieldError(field="client_name", message="Client name is required"))
    if not _is_email(draft.email):
        errors.append(FieldError(field="email", message="Invalid email address"))
    if len(draft.phone) < 10:
        errors.append(FieldError(field="phone", message="Phone number is required"))
    if len(draft.billing_address) < 5:
        errors.append(FieldError(field="billing_address", message="Billing address is required"))
    if not draft.invoice_number:
        errors.append(FieldError(field="invoice_number", message="Invoice number is required"))

    _check_date(errors, "invoice_date", draft.invoice_date, "Invoice date")
    _check_date(errors, "due_date", draft.due_date, "Due date")

    if not draft.payment_terms:
        errors.append(FieldError(field="payment_terms", message="Payment terms are required"))
    if not 0 <= draft.tax_rate <= 100:
        errors.append(FieldError(field="tax_rate", message="Tax rate must be between 0 and 100"))
    if not 0 <= draft.discount <= 100:
        errors.append(FieldError(field="discount", message="Discount must be between 0 and 100"))
    if draft.paid_amount < 0:
        errors.append(FieldError(field="paid_amount", message="Paid amount cannot be negative"))
    if draft.currency not in CURRENCY_SYMBOLS:
        errors.append(FieldError(field="currency", message="Unsupported currency"))

    return errors

def ensure_valid(draft: InvoiceDraft) -> None:
    """Raise DraftValidationError if the draft fails validation"""
    errors = validate_draft(draft)
    if errors:
        raise DraftValidationError(errors)
