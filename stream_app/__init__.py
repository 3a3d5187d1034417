"""Flask application factory following Flask best practices."""
import atexit
from typing import Optional

from flask import Flask
from flask_cors import CORS

from utils.config import get_app_config
from utils.logging import configure_logging


def create_app(config_override: Optional[dict] = None, service=None) -> Flask:
    """Create and configure Flask application using application factory pattern.

    Args:
        config_override: Optional Flask configuration overrides for testing
        service: Optional pre-built ProcessingService (tests inject fakes here)

    Returns:
        Flask app instance
    """
    app = Flask(__name__)

    # Load configuration
    config = get_app_config()

    app.config['APP_CONFIG'] = config
    app.config['START_SWEEPER'] = True
    if config_override:
        for key, value in config_override.items():
            app.config[key] = value

    CORS(app, origins=list(config.allowed_origins))

    configure_logging()

    if service is None:
        from stream_app.services.processing import build_processing_service
        service = build_processing_service(config)
    app.extensions['processing_service'] = service

    if app.config['START_SWEEPER'] and service.sweeper is not None:
        service.sweeper.start()
        atexit.register(service.shutdown)

    register_blueprints(app)
    register_error_handlers(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    # Import blueprints here to avoid circular imports
    from stream_app.api.health import bp as health_bp
    from stream_app.api.jobs import bp as jobs_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(jobs_bp, url_prefix='/jobs')


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""
    from flask import jsonify
    from werkzeug.exceptions import HTTPException
    from utils.exceptions import (
        AssemblyError,
        ConfigurationError,
        FetchError,
        InputValidationError,
        JobCancelledError,
        NotFoundError,
        ResolutionError,
        ServiceError,
        TranscodeError,
        TranscriptionError,
        WorkspaceExpiredError,
    )

    status_codes = [
        (InputValidationError, 400),
        (NotFoundError, 404),
        (JobCancelledError, 409),
        (WorkspaceExpiredError, 410),
        (ResolutionError, 502),
        (FetchError, 502),
        (TranscriptionError, 502),
        (AssemblyError, 500),
        (TranscodeError, 500),
        (ConfigurationError, 500),
    ]

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        for error_type, status in status_codes:
            if isinstance(error, error_type):
                break
        else:
            status = 500
        if status >= 500:
            app.logger.error(f"{type(error).__name__}: {error}")
        else:
            app.logger.warning(f"{type(error).__name__}: {error}")
        return jsonify({'error': str(error), 'type': type(error).__name__}), status

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description}), error.code


def get_processing_service():
    """Processing service bound to the current app."""
    from flask import current_app
    return current_app.extensions['processing_service']
