from flask import Blueprint, request, jsonify
from marshmallow import ValidationError
import logging

from repairshop.schemas.company_schema import CompanySchema
from repairshop.schemas.invoice_schema import (
    InvoiceSchema,
    InvoiceUpdateSchema,
    LineItemSchema,
    LineItemUpdateSchema,
    TaxSchema,
    TaxUpdateSchema,
)
from repairshop.schemas.job_schema import JobSchema
from repairshop.services.invoice_service import InvoiceService, ServiceError

logger = logging.getLogger(__name__)

invoice_bp = Blueprint('invoice', __name__)
schema = InvoiceSchema()
schema_many = InvoiceSchema(many=True)
update_schema = InvoiceUpdateSchema()
line_item_schema = LineItemSchema()
line_item_update_schema = LineItemUpdateSchema()
tax_schema = TaxSchema()
tax_update_schema = TaxUpdateSchema()

UNEXPECTED_ERROR = {'error': 'An unexpected error occurred. Please try again later.'}


def _invoice_response(invoice, status_code=200):
    if not invoice:
        return jsonify({'error': 'Invoice not found'}), 404
    return jsonify(schema.dump(invoice)), status_code


@invoice_bp.route('/invoices', methods=['GET'])
def list_invoices():
    try:
        invoices = InvoiceService.get_all(job_id=request.args.get('job_id', type=int))
        return jsonify(schema_many.dump(invoices)), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in list_invoices: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>', methods=['GET'])
def get_invoice(invoice_id):
    try:
        return _invoice_response(InvoiceService.get_by_id(invoice_id))
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in get_invoice: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/jobs/<int:job_id>/invoices', methods=['POST'])
def create_invoice_from_job(job_id):
    try:
        invoice = InvoiceService.create_from_job(job_id)
        if not invoice:
            return jsonify({'error': 'Job not found'}), 404
        return jsonify(schema.dump(invoice)), 201
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in create_invoice_from_job: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>', methods=['PUT'])
def update_invoice(invoice_id):
    try:
        data = update_schema.load(request.get_json(silent=True) or {})
        return _invoice_response(InvoiceService.update(invoice_id, data))
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in update_invoice: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>', methods=['DELETE'])
def delete_invoice(invoice_id):
    try:
        if not InvoiceService.delete(invoice_id):
            return jsonify({'error': 'Invoice not found'}), 404
        return jsonify({'message': 'Invoice deleted'}), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in delete_invoice: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------
@invoice_bp.route('/invoices/<int:invoice_id>/line-items', methods=['POST'])
def add_line_item(invoice_id):
    try:
        data = line_item_schema.load(request.get_json(silent=True) or {})
        invoice = InvoiceService.add_line_item(
            invoice_id, data['description'], data['quantity'], data['unit_price']
        )
        return _invoice_response(invoice, 201)
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in add_line_item: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>/line-items/<string:item_id>', methods=['PATCH'])
def update_line_item(invoice_id, item_id):
    try:
        data = line_item_update_schema.load(request.get_json(silent=True) or {})
        return _invoice_response(InvoiceService.update_line_item(invoice_id, item_id, data))
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in update_line_item: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>/line-items/<string:item_id>', methods=['DELETE'])
def remove_line_item(invoice_id, item_id):
    try:
        return _invoice_response(InvoiceService.remove_line_item(invoice_id, item_id))
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in remove_line_item: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


# ---------------------------------------------------------------------------
# Taxes
# ---------------------------------------------------------------------------
@invoice_bp.route('/invoices/<int:invoice_id>/taxes', methods=['POST'])
def add_tax(invoice_id):
    try:
        data = tax_schema.load(request.get_json(silent=True) or {})
        return _invoice_response(InvoiceService.add_tax(invoice_id, data['name'], data['rate']), 201)
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in add_tax: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>/taxes/<string:tax_id>', methods=['PATCH'])
def update_tax(invoice_id, tax_id):
    try:
        data = tax_update_schema.load(request.get_json(silent=True) or {})
        return _invoice_response(InvoiceService.update_tax(invoice_id, tax_id, data))
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in update_tax: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>/taxes/<string:tax_id>', methods=['DELETE'])
def remove_tax(invoice_id, tax_id):
    try:
        return _invoice_response(InvoiceService.remove_tax(invoice_id, tax_id))
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in remove_tax: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500


@invoice_bp.route('/invoices/<int:invoice_id>/print', methods=['GET'])
def print_context(invoice_id):
    """Data for the external print/PDF renderer."""
    try:
        context = InvoiceService.to_print_context(invoice_id)
        if not context:
            return jsonify({'error': 'Invoice not found'}), 404
        company = context['company']
        return jsonify({
            'invoice': schema.dump(context['invoice']),
            'job': JobSchema().dump(context['job']),
            'company': CompanySchema().dump(company) if company else None,
        }), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in print_context: {e}", exc_info=True)
        return jsonify(UNEXPECTED_ERROR), 500
