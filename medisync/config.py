import os
from dotenv import load_dotenv


load_dotenv()


# Use SQLite for development, but allow override for production
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./medisync.db")

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")

# Try different models in order of preference
GEMINI_MODEL_NAMES = [
    name.strip()
    for name in os.environ.get(
        "GEMINI_MODEL_NAMES",
        "gemini-2.0-flash,models/gemini-2.0-flash,gemini-flash-latest,models/gemini-flash-latest",
    ).split(",")
    if name.strip()
]

# Twilio signs its webhooks with the account auth token
TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")

PORT = int(os.environ.get("PORT", 8000))

SEED_ON_STARTUP = os.environ.get("SEED_ON_STARTUP", "true").lower() in ("1", "true", "yes")

# Ids with this prefix are client-side only and never reach the database
TEMP_ID_PREFIX = "temp-"
