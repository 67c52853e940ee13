"""
Invoice totals engine.

Pure transformations over an in-memory InvoiceDraft. Every operation returns a
new draft; the draft passed in is never modified. After each operation the
subtotal, every tax amount, the tax total and the grand total are consistent
with the current line items.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

LINE_ITEM_FIELDS = ("description", "quantity", "unit_price")
TAX_FIELDS = ("name", "rate")


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Any) -> Decimal:
    """Round to cents for storage in Numeric(12, 2) columns."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def new_id() -> str:
    return uuid.uuid4().hex


def tax_amount(subtotal: Decimal, rate: Decimal) -> Decimal:
    return to_decimal(subtotal) * to_decimal(rate) / HUNDRED


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    description: str = ""
    quantity: int = 1
    unit_price: Decimal = ZERO
    amount: Decimal = ZERO

    @model_validator(mode="before")
    @classmethod
    def _derive_amount(cls, data):
        # Stored items written without an amount get it derived on load
        if isinstance(data, dict) and data.get("amount") is None:
            data = dict(data)
            data["amount"] = int(data.get("quantity") or 0) * to_decimal(data.get("unit_price"))
        return data


class Tax(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    name: str
    rate: Decimal = ZERO
    amount: Decimal = ZERO


class InvoiceDraft(BaseModel):
    """Line items, taxes and the totals derived from them."""

    line_items: List[LineItem] = Field(default_factory=list)
    taxes: List[Tax] = Field(default_factory=list)
    subtotal: Decimal = ZERO
    tax_total: Decimal = ZERO
    total: Decimal = ZERO

    @property
    def bill_amount(self) -> Decimal:
        return self.subtotal

    def find_line_item(self, item_id: str) -> Optional[LineItem]:
        return next((item for item in self.line_items if item.id == item_id), None)

    def find_tax(self, tax_id: str) -> Optional[Tax]:
        return next((tax for tax in self.taxes if tax.id == tax_id), None)


def recalculate(line_items: Iterable[LineItem], taxes: Iterable[Tax]) -> InvoiceDraft:
    """
    Shared recomputation used by every mutator.

    Line item amounts are trusted as they are; every tax amount is recomputed
    against the new subtotal so no stale tax survives a line item change.
    """
    line_items = list(line_items)
    subtotal = sum((to_decimal(item.amount) for item in line_items), ZERO)
    updated_taxes = [
        tax.model_copy(update={"amount": tax_amount(subtotal, tax.rate)})
        for tax in taxes
    ]
    tax_total = sum((tax.amount for tax in updated_taxes), ZERO)
    return InvoiceDraft(
        line_items=line_items,
        taxes=updated_taxes,
        subtotal=subtotal,
        tax_total=tax_total,
        total=subtotal + tax_total,
    )


def _changes(updates: Optional[Dict[str, Any]], allowed) -> Dict[str, Any]:
    return {
        key: value
        for key, value in (updates or {}).items()
        if key in allowed and value is not None
    }


def add_line_item(draft: Optional[InvoiceDraft], description: str, quantity: int, unit_price) -> Optional[InvoiceDraft]:
    if draft is None:
        return draft
    unit_price = to_decimal(unit_price)
    item = LineItem(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        amount=quantity * unit_price,
    )
    return recalculate([*draft.line_items, item], draft.taxes)


def update_line_item(draft: Optional[InvoiceDraft], item_id: str, updates: Dict[str, Any]) -> Optional[InvoiceDraft]:
    """Merge description/quantity/unit_price into one item; unknown ids are a no-op."""
    if draft is None or draft.find_line_item(item_id) is None:
        return draft

    changes = _changes(updates, LINE_ITEM_FIELDS)
    if "quantity" in changes:
        changes["quantity"] = int(changes["quantity"])
    if "unit_price" in changes:
        changes["unit_price"] = to_decimal(changes["unit_price"])

    line_items = []
    for item in draft.line_items:
        if item.id == item_id:
            item = item.model_copy(update=changes)
            if "quantity" in changes or "unit_price" in changes:
                item = item.model_copy(update={"amount": item.quantity * item.unit_price})
        line_items.append(item)
    return recalculate(line_items, draft.taxes)


def remove_line_item(draft: Optional[InvoiceDraft], item_id: str) -> Optional[InvoiceDraft]:
    if draft is None or draft.find_line_item(item_id) is None:
        return draft
    return recalculate(
        [item for item in draft.line_items if item.id != item_id],
        draft.taxes,
    )


def add_tax(draft: Optional[InvoiceDraft], name: str, rate) -> Optional[InvoiceDraft]:
    if draft is None:
        return draft
    rate = to_decimal(rate)
    tax = Tax(name=name, rate=rate, amount=tax_amount(draft.subtotal, rate))
    return recalculate(draft.line_items, [*draft.taxes, tax])


def update_tax(draft: Optional[InvoiceDraft], tax_id: str, updates: Dict[str, Any]) -> Optional[InvoiceDraft]:
    """Taxes are addressed by their stable id, not by list position."""
    if draft is None or draft.find_tax(tax_id) is None:
        return draft

    changes = _changes(updates, TAX_FIELDS)
    if "rate" in changes:
        changes["rate"] = to_decimal(changes["rate"])

    taxes = [
        tax.model_copy(update=changes) if tax.id == tax_id else tax
        for tax in draft.taxes
    ]
    return recalculate(draft.line_items, taxes)


def remove_tax(draft: Optional[InvoiceDraft], tax_id: str) -> Optional[InvoiceDraft]:
    if draft is None or draft.find_tax(tax_id) is None:
        return draft
    return recalculate(draft.line_items, [tax for tax in draft.taxes if tax.id != tax_id])
