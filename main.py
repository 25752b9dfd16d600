import os
from app import create_app
from config import DEBUG
from database.connection import init_db
from utils.logger import logger

app = create_app()

if __name__ == "__main__":
    # Get port from environment variable or default to 8000
    port = int(os.getenv("PORT", 8000))

    logger.info("🚀 Starting ViloAi reply service...")
    logger.info(f"Environment: {'Development' if DEBUG else 'Production'}")
    logger.info(f"Port: {port}")

    if DEBUG:
        # Migrations own the schema in production
        init_db()

    # Use Flask server (Gunicorn serves main:app in production)
    app.run(host='0.0.0.0', port=port, debug=DEBUG)
