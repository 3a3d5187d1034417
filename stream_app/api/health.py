"""Health check API blueprint."""
from flask import Blueprint, jsonify
import logging

from stream_app import get_processing_service

bp = Blueprint('health', __name__)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint to verify service is running."""
    logger.info("Health check requested")

    return jsonify({
        "status": "healthy",
        "service": "Stream Audio API",
        "version": VERSION,
        "active_jobs": get_processing_service().store.job_count()
    })


@bp.route('/', methods=['GET'])
def root():
    """Root endpoint with API information."""
    return jsonify({
        "service": "Stream Audio API",
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "jobs": {
                "create": "POST /jobs",
                "status": "GET /jobs/{job_id}",
                "artifacts": "GET /jobs/{job_id}/artifacts/{video|audio|transcript}"
            }
        }
    })
