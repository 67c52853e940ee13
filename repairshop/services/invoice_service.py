import logging
from datetime import timedelta
from flask import current_app

from repairshop.extensions import db
from repairshop.models.company import Company
from repairshop.models.invoice import Invoice, InvoiceSequence, InvoiceStatus
from repairshop.models.job import Job
from repairshop.services import invoice_totals
from repairshop.services.invoice_totals import InvoiceDraft, LineItem, Tax, recalculate, to_decimal
from repairshop.utils.timezone_utils import local_today

logger = logging.getLogger(__name__)

HEADER_FIELDS = ('bill_description', 'status', 'issue_date', 'due_date', 'notes', 'terms')


class ServiceError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvoiceService:
    @staticmethod
    def get_all(job_id=None):
        try:
            query = Invoice.query.join(Job).filter(Job.is_deleted.is_(False))
            if job_id:
                query = query.filter(Invoice.job_id == job_id)
            return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
        except Exception as e:
            logger.error(f"Error fetching invoices: {e}", exc_info=True)
            raise ServiceError("Could not fetch invoices. Please try again later.")

    @staticmethod
    def get_by_id(invoice_id):
        try:
            invoice = InvoiceService._get_active(invoice_id)
            if invoice is not None:
                InvoiceService._ensure_item_ids(invoice)
            return invoice
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error fetching invoice: {e}", exc_info=True)
            raise ServiceError("Could not fetch invoice. Please try again later.")

    @staticmethod
    def _get_active(invoice_id):
        """Invoice by id, unless its job has been deleted."""
        return Invoice.query.join(Job).filter(
            Invoice.id == invoice_id,
            Job.is_deleted.is_(False),
        ).first()

    @staticmethod
    def _ensure_item_ids(invoice):
        # Rows written before taxes had ids are addressable only after this
        stored = (invoice.line_items or []) + (invoice.taxes or [])
        if all(entry.get('id') for entry in stored):
            return
        draft = invoice.to_draft()
        invoice.apply_draft(recalculate(draft.line_items, draft.taxes))
        db.session.commit()
        logger.info(f"Assigned missing line item / tax ids on invoice {invoice.invoice_number}")

    @staticmethod
    def _next_invoice_number():
        sequence = InvoiceSequence.query.with_for_update().first()
        if sequence is None:
            sequence = InvoiceSequence(last_number=0)
            db.session.add(sequence)
        sequence.last_number += 1
        return f"INV-{sequence.last_number:04d}"

    @staticmethod
    def create_from_job(job_id):
        """
        Create a draft invoice for a job: one handling-fee line item and the
        default tax, due after the configured number of days.
        """
        try:
            job = Job.query_active().filter_by(id=job_id).first()
            if not job:
                return None

            config = current_app.config
            draft = invoice_totals.add_line_item(InvoiceDraft(), "Handling Fees", 1, job.handling_fees)
            draft = invoice_totals.add_tax(draft, config['DEFAULT_TAX_NAME'], config['DEFAULT_TAX_RATE'])

            issue_date = local_today()
            invoice = Invoice(
                invoice_number=InvoiceService._next_invoice_number(),
                job_id=job.id,
                bill_description=f"Invoice for job card #{job.job_card_number}",
                status=InvoiceStatus.DRAFT.value,
                issue_date=issue_date,
                due_date=issue_date + timedelta(days=config['INVOICE_DUE_DAYS']),
                notes="",
                terms=config['INVOICE_TERMS'],
            )
            invoice.apply_draft(draft)
            db.session.add(invoice)
            db.session.commit()
            logger.info(f"Created invoice {invoice.invoice_number} for job {job.job_card_number}")
            return invoice
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating invoice: {e}", exc_info=True)
            raise ServiceError("Could not create invoice. Please try again later.")

    @staticmethod
    def update(invoice_id, data):
        """
        Update header fields. When line items or taxes are supplied they replace
        the stored lists and every total is recalculated.
        """
        try:
            invoice = InvoiceService._get_active(invoice_id)
            if not invoice:
                return None
            for key in HEADER_FIELDS:
                if key in data:
                    setattr(invoice, key, data[key])

            if 'line_items' in data or 'taxes' in data:
                current = invoice.to_draft()
                line_items = current.line_items
                taxes = current.taxes
                if 'line_items' in data:
                    line_items = [
                        LineItem(
                            description=item['description'],
                            quantity=item['quantity'],
                            unit_price=to_decimal(item['unit_price']),
                            amount=item['quantity'] * to_decimal(item['unit_price']),
                            **({'id': item['id']} if item.get('id') else {}),
                        )
                        for item in data['line_items']
                    ]
                if 'taxes' in data:
                    taxes = [
                        Tax(
                            name=tax['name'],
                            rate=to_decimal(tax['rate']),
                            **({'id': tax['id']} if tax.get('id') else {}),
                        )
                        for tax in data['taxes']
                    ]
                invoice.apply_draft(recalculate(line_items, taxes))

            db.session.commit()
            return invoice
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error updating invoice: {e}", exc_info=True)
            raise ServiceError("Could not update invoice. Please try again later.")

    @staticmethod
    def _edit(invoice_id, operation, action):
        """Load the draft, apply one totals operation, persist everything in one commit."""
        try:
            invoice = InvoiceService._get_active(invoice_id)
            if not invoice:
                return None
            invoice.apply_draft(operation(invoice.to_draft()))
            db.session.commit()
            logger.info(f"Invoice {invoice.invoice_number}: {action}, total now {invoice.total}")
            return invoice
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error editing invoice ({action}): {e}", exc_info=True)
            raise ServiceError("Could not update invoice. Please try again later.")

    @staticmethod
    def add_line_item(invoice_id, description, quantity, unit_price):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.add_line_item(draft, description, quantity, unit_price),
            "line item added",
        )

    @staticmethod
    def update_line_item(invoice_id, item_id, updates):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.update_line_item(draft, item_id, updates),
            f"line item {item_id} updated",
        )

    @staticmethod
    def remove_line_item(invoice_id, item_id):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.remove_line_item(draft, item_id),
            f"line item {item_id} removed",
        )

    @staticmethod
    def add_tax(invoice_id, name, rate):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.add_tax(draft, name, rate),
            f"tax {name} added",
        )

    @staticmethod
    def update_tax(invoice_id, tax_id, updates):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.update_tax(draft, tax_id, updates),
            f"tax {tax_id} updated",
        )

    @staticmethod
    def remove_tax(invoice_id, tax_id):
        return InvoiceService._edit(
            invoice_id,
            lambda draft: invoice_totals.remove_tax(draft, tax_id),
            f"tax {tax_id} removed",
        )

    @staticmethod
    def delete(invoice_id):
        try:
            invoice = InvoiceService._get_active(invoice_id)
            if not invoice:
                return False
            db.session.delete(invoice)
            db.session.commit()
            return True
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error deleting invoice: {e}", exc_info=True)
            raise ServiceError("Could not delete invoice. Please try again later.")

    @staticmethod
    def to_print_context(invoice_id):
        """Invoice, job and company bundle for the external print renderer."""
        invoice = InvoiceService.get_by_id(invoice_id)
        if not invoice:
            return None
        try:
            company = Company.query.first()
        except Exception as e:
            logger.error(f"Error fetching company for print: {e}", exc_info=True)
            raise ServiceError("Could not load company profile. Please try again later.")
        return {'invoice': invoice, 'job': invoice.job, 'company': company}
