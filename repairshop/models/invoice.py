from repairshop.extensions import db
from datetime import date
from enum import Enum
from sqlalchemy import Numeric

from repairshop.services.invoice_totals import InvoiceDraft, quantize_money


class InvoiceStatus(Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"

    @classmethod
    def values(cls):
        return [status.value for status in cls]


class Invoice(db.Model):
    __tablename__ = 'invoice'

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey('job.id', ondelete='CASCADE'), nullable=False, index=True)
    bill_description = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)
    issue_date = db.Column(db.Date, nullable=False, default=date.today)
    due_date = db.Column(db.Date, nullable=True)

    # Line items and taxes are stored as JSON lists; amounts as decimal strings
    line_items = db.Column(db.JSON, nullable=False, default=list)
    taxes = db.Column(db.JSON, nullable=False, default=list)

    subtotal = db.Column(Numeric(precision=12, scale=2), nullable=False, default=0)
    tax_total = db.Column(Numeric(precision=12, scale=2), nullable=False, default=0)
    bill_amount = db.Column(Numeric(precision=12, scale=2), nullable=False, default=0)
    total = db.Column(Numeric(precision=12, scale=2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True, default="")
    terms = db.Column(db.Text, nullable=True, default="")
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    job = db.relationship('Job', back_populates='invoices')

    def to_draft(self) -> InvoiceDraft:
        """Load the stored lists into an in-memory draft."""
        return InvoiceDraft(
            line_items=self.line_items or [],
            taxes=self.taxes or [],
            subtotal=self.subtotal or 0,
            tax_total=self.tax_total or 0,
            total=self.total or 0,
        )

    def apply_draft(self, draft: InvoiceDraft):
        """Write a draft back; lists and all totals are replaced together."""
        self.line_items = [item.model_dump(mode='json') for item in draft.line_items]
        self.taxes = [tax.model_dump(mode='json') for tax in draft.taxes]
        self.subtotal = quantize_money(draft.subtotal)
        self.tax_total = quantize_money(draft.tax_total)
        self.bill_amount = quantize_money(draft.bill_amount)
        self.total = quantize_money(draft.total)

    @property
    def is_unpaid(self):
        return self.status not in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value)

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"


class InvoiceSequence(db.Model):
    """Single-row counter behind INV-0001 style invoice numbers."""
    __tablename__ = 'invoice_sequence'

    id = db.Column(db.Integer, primary_key=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
