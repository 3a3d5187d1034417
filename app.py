"""Main application entry point using Flask application factory pattern."""

import os
from stream_app import create_app

# Create Flask application using application factory
app = create_app()

if __name__ == '__main__':
    # Get port from environment variable (for Render deployment) or default to 5000
    port = int(os.environ.get('PORT', 5000))

    # Development server configuration; the reloader would start a second sweeper
    app.run(
        host='0.0.0.0',
        port=port,
        debug=os.environ.get('FLASK_ENV') != 'production',
        use_reloader=False,
        threaded=True
    )
