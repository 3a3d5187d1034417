"""WSGI entry point for production deployment with gunicorn."""

from stream_app import create_app

# Create Flask app instance
app = create_app()

# Export app for gunicorn
# Jobs run inside the request, so use threaded workers with a generous timeout
application = app
