"""
ASGI entry point for the connection API.

    uvicorn server.asgi:app

.env is read before the config snapshot is taken, so values there
behave exactly like real environment variables.
"""

from dotenv import load_dotenv

load_dotenv()

# pylint: disable=wrong-import-position
from config import AppConfig
from server.app import create_app

config = AppConfig.load_from_env()

app = create_app(config)
