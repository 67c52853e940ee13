from flask import Blueprint, jsonify
import logging

from repairshop.services.analytics_service import AnalyticsService, ServiceError

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__)


@reports_bp.route('/reports/analytics', methods=['GET'])
def analytics():
    try:
        return jsonify(AnalyticsService.summary()), 200
    except ServiceError as se:
        return jsonify({'error': se.message}), 400
    except Exception as e:
        logger.error(f"Unhandled error in analytics: {e}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred. Please try again later.'}), 500
