import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

app = "app.main:app"
port = int(os.getenv("API_PORT", "8001"))
host = os.getenv("API_HOST", "127.0.0.1")  # Default to localhost instead of 0.0.0.0
reload = os.getenv("APP_ENV", "development") != "production"
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
