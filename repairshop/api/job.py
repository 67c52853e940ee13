from flask import Blueprint, request, jsonify
from marshmallow import ValidationError
import logging

from repairshop.extensions import limiter
from repairshop.schemas.job_schema import JobSchema, JobStatusSchema
from repairshop.services.job_service import JobService, ServiceError
from repairshop.services.job_card_number import JobCardAllocationError, JobCardLookupError

logger = logging.getLogger(__name__)

job_bp = Blueprint('job', __name__)
schema = JobSchema()
schema_many = JobSchema(many=True)
status_schema = JobStatusSchema()


@job_bp.route('/jobs', methods=['GET'])
def list_jobs():
    try:
        jobs = JobService.get_all(
            status=request.args.get('status'),
            search=request.args.get('search'),
        )
        return jsonify(schema_many.dump(jobs)), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in list_jobs: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs/<int:job_id>', methods=['GET'])
def get_job(job_id):
    try:
        job = JobService.get_by_id(job_id)
        if not job:
            return jsonify({'error': 'Job not found'}), 404
        return jsonify(schema.dump(job)), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in get_job: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs/card/<string:job_card_number>', methods=['GET'])
def get_job_by_card_number(job_card_number):
    try:
        job = JobService.get_by_card_number(job_card_number)
        if not job:
            return jsonify({'error': 'Job card not found'}), 404
        return jsonify(schema.dump(job)), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in get_job_by_card_number: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs', methods=['POST'])
@limiter.limit("60 per minute")
def create_job():
    try:
        data = schema.load(request.get_json(silent=True) or {})
        job = JobService.create(data)
        return jsonify(schema.dump(job)), 201
    except ValidationError as err:
        return jsonify(err.messages), 400
    except (JobCardLookupError, JobCardAllocationError) as e:
        logger.error(f"Job card number allocation failed: {e.message}")
        return jsonify({'error': e.message}), 503
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in create_job: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs/<int:job_id>', methods=['PUT'])
def update_job(job_id):
    try:
        data = schema.load(request.get_json(silent=True) or {}, partial=True)
        job = JobService.update(job_id, data)
        if not job:
            return jsonify({'error': 'Job not found'}), 404
        return jsonify(schema.dump(job)), 200
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in update_job: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs/<int:job_id>/status', methods=['PATCH'])
def update_job_status(job_id):
    try:
        data = status_schema.load(request.get_json(silent=True) or {})
        job = JobService.update_status(job_id, data['status'])
        if not job:
            return jsonify({'error': 'Job not found'}), 404
        return jsonify(schema.dump(job)), 200
    except ValidationError as err:
        return jsonify(err.messages), 400
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in update_job_status: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500


@job_bp.route('/jobs/<int:job_id>', methods=['DELETE'])
def delete_job(job_id):
    try:
        if not JobService.delete(job_id):
            return jsonify({'error': 'Job not found'}), 404
        return jsonify({'message': 'Job deleted'}), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in delete_job: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500
