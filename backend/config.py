"""Configuration management for the conversation gateway."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Conversation storage: empty keeps history in memory only
CHAT_DATABASE_URL = os.getenv("CHAT_DATABASE_URL", "")

# Downstream chat servers: "url" or "url|api_key", comma separated
CHAT_SERVERS = os.getenv("CHAT_SERVERS", "")
CHAT_MODELS = os.getenv("CHAT_MODELS", "")

# Relay Configuration
SYSTEM_PROMPT = os.getenv(
    "SYSTEM_PROMPT",
    "You are an AI assistant. Answer as helpfully and concisely as possible."
)
_relay_timeout = os.getenv("RELAY_TIMEOUT", "")
RELAY_TIMEOUT = float(_relay_timeout) if _relay_timeout else None  # seconds

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
