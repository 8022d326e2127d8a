import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 4001))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

# Allowed cross-origin caller for the client application
FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
BUILD_DIR = os.getenv("BUILD_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "build"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
