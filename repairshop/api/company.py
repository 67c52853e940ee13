from flask import Blueprint, request, jsonify
from marshmallow import ValidationError
import logging

from repairshop.schemas.company_schema import CompanySchema
from repairshop.services.company_service import CompanyService, ServiceError

logger = logging.getLogger(__name__)

company_bp = Blueprint('company', __name__)
schema = CompanySchema()


@company_bp.route('/company', methods=['GET'])
def get_company():
    try:
        company = CompanyService.get()
        if not company:
            return jsonify({'error': 'Company profile not set up'}), 404
        return jsonify(schema.dump(company)), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in get_company: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@company_bp.route('/company', methods=['PUT'])
def save_company():
    try:
        existing = CompanyService.get()
        # Partial updates once a profile exists; full payload for the first save
        data = schema.load(request.get_json(silent=True) or {}, partial=existing is not None)
        company = CompanyService.upsert(data)
        return jsonify(schema.dump(company)), 200
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in save_company: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500
