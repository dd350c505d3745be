"""
Entry point for the Users CRUD service
"""

import logging
from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from users_service.config.settings import PORT, LOG_LEVEL  # noqa: E402
from users_service.app import app  # noqa: E402

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Users CRUD service on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
