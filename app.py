import logging

from api.routes import app, settings

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    # Log startup
    logger.info(f"Starting Flask server ({settings.environment})...")
    app.run(debug=settings.is_development, port=8000)
