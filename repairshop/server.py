import importlib
import logging
import os
import traceback
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded
from werkzeug.exceptions import HTTPException

# Load environment variables from .env file
load_dotenv()

from repairshop.config import get_config
from repairshop.extensions import db, limiter

logger = logging.getLogger(__name__)

# Blueprint modules under repairshop.api and their URL prefixes
BLUEPRINTS = [
    ('job', '/api'),
    ('invoice', '/api'),
    ('company', '/api'),
    ('reports', '/api'),
]


def configure_logging(app):
    logs_dir = app.config['LOGS_DIR']
    os.makedirs(logs_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if app.config.get('DEBUG') else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(os.path.join(logs_dir, 'app.log')),
            logging.StreamHandler()
        ]
    )


def ensure_storage(app):
    uri = app.config.get('SQLALCHEMY_DATABASE_URI') or ''
    if not uri:
        raise RuntimeError("SQLALCHEMY_DATABASE_URI is not configured")
    if uri.startswith('sqlite:///') and ':memory:' not in uri:
        os.makedirs(os.path.dirname(uri.replace('sqlite:///', '', 1)) or '.', exist_ok=True)


def register_blueprints(app):
    for blueprint_name, prefix in BLUEPRINTS:
        module = importlib.import_module(f'repairshop.api.{blueprint_name}')
        blueprint = getattr(module, f'{blueprint_name}_bp')
        app.register_blueprint(blueprint, url_prefix=prefix)
        logger.info(f"Registered blueprint: {blueprint_name} with prefix: {prefix}")


def register_request_logging(app):
    @app.before_request
    def log_request_info():
        logger.debug(f"Request: {request.method} {request.url}")
        if request.is_json and request.content_length:
            logger.debug(f"JSON data: {request.get_json(silent=True)}")

    @app.after_request
    def log_response_info(response):
        logger.debug(f"Response: {response.status_code}")
        if response.status_code >= 400:
            logger.error(f"Error response: {response.status_code} for {request.method} {request.url}")
            if response.is_json:
                logger.error(f"Response data: {response.get_json()}")
        return response


def register_error_handlers(app):
    @app.errorhandler(400)
    def bad_request(error):
        logger.error(f"400 Bad Request for {request.method} {request.url}: {error}")
        return jsonify({
            'error': 'Bad Request',
            'message': str(error),
            'path': request.path
        }), 400

    @app.errorhandler(404)
    def not_found(error):
        logger.error(f"404 error for path: {request.path}")
        if request.path.startswith('/api/'):
            return jsonify({'error': 'API endpoint not found', 'path': request.path}), 404
        return jsonify({'error': 'Page not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'path': request.path}), 405

    @app.errorhandler(RateLimitExceeded)
    def ratelimit_handler(e):
        logger.warning(f"Rate limit exceeded for {request.method} {request.url}")
        return jsonify({'error': 'Rate limit exceeded. Please try again later.'}), 429

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({'error': e.description}), e.code
        logger.error(f"Unhandled exception for {request.method} {request.url}: {e}")
        logger.error(traceback.format_exc())
        return jsonify({'error': 'Internal server error'}), 500


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or get_config())
    app.json.sort_keys = False

    configure_logging(app)
    ensure_storage(app)

    db.init_app(app)
    limiter.init_app(app)
    CORS(app, supports_credentials=True, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})
    logger.info("Database connected: %s", "sqlite" if "sqlite" in app.config["SQLALCHEMY_DATABASE_URI"] else "non-sqlite")

    register_blueprints(app)
    register_request_logging(app)
    register_error_handlers(app)

    @app.route('/')
    def root():
        return {'status': 'ok', 'message': 'RepairShop Backend API is running. Available endpoints: /api/*'}

    @app.route('/api/health-check')
    def health_check():
        healthy = db.health_check()
        return {
            'status': 'ok' if healthy else 'degraded',
            'database': 'healthy' if healthy else 'unhealthy',
            'pool': db.get_pool_stats(),
        }, 200 if healthy else 503

    with app.app_context():
        from repairshop.models.job import Job  # noqa: F401
        from repairshop.models.invoice import Invoice, InvoiceSequence  # noqa: F401
        from repairshop.models.company import Company  # noqa: F401
        db.create_all()

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(
        host=app.config.get('FLASK_HOST', '0.0.0.0'),
        port=app.config.get('FLASK_PORT', 5000),
        debug=app.config.get('DEBUG', False),
    )
