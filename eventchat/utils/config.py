import os
import logging
from dotenv import load_dotenv

# load .env located at eventchat/.env (relative, robust across machines)
BASE_DIR = os.path.dirname(os.path.dirname(__file__))   # eventchat/
DOTENV_PATH = os.path.join(BASE_DIR, ".env")
load_dotenv(dotenv_path=DOTENV_PATH)

logger = logging.getLogger(__name__)

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Database
MONGODB_URI = os.getenv('MONGODB_URI')
MONGODB_DB = os.getenv('MONGODB_DB')

# CORS
CORS_ORIGINS = os.getenv(
    'CORS_ORIGINS',
    "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
)

# LLM (any OpenAI-compatible endpoint, e.g. OpenRouter via LLM_BASE_URL)
LLM_API_KEY = os.getenv('LLM_API_KEY') or os.getenv('OPENAI_API_KEY')
LLM_BASE_URL = os.getenv('LLM_BASE_URL') or None
LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', '30'))
AI_SHORT_TIMEOUT_SECONDS = float(os.getenv('AI_SHORT_TIMEOUT_SECONDS', '15'))

# Web search
SERPAPI_API_KEY = os.getenv('SERPAPI_API_KEY')
SERPER_API_KEY = os.getenv('SERPER_API_KEY')
SEARCH_TIMEOUT_SECONDS = float(os.getenv('SEARCH_TIMEOUT_SECONDS', '20'))

# Reverse geocoding (Geoapify)
GEOAPIFY_API_KEY = os.getenv('GEOAPIFY_API_KEY')
GEOCODE_TIMEOUT_SECONDS = float(os.getenv('GEOCODE_TIMEOUT_SECONDS', '10'))

# JWT
ENV = os.getenv('ENV', 'development').lower()
_DEFAULT_JWT_SECRET = 'dev-only-eventchat-secret-change-me-0b7f3c9e5d1a4f2e8c6b'
JWT_SECRET = os.getenv('JWT_SECRET')
if not JWT_SECRET:
    if ENV in ('development', 'test'):
        JWT_SECRET = _DEFAULT_JWT_SECRET
        logger.warning("Using default JWT secret in %s environment.", ENV)
    else:
        raise RuntimeError("JWT_SECRET environment variable must be set in production environment.")
JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', '60'))

# Email
EMAIL_USERNAME = os.getenv('EMAIL_USERNAME')
EMAIL_PASSWORD = os.getenv('EMAIL_PASSWORD')
EMAIL_HOST = os.getenv('EMAIL_HOST')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_FROM = os.getenv('EMAIL_FROM') or EMAIL_USERNAME

# Reminder dispatch loop; 0 disables it
REMINDER_DISPATCH_INTERVAL_SECONDS = int(os.getenv('REMINDER_DISPATCH_INTERVAL_SECONDS', '3600'))

# Conversation persistence retry policy
PERSIST_RETRIES = int(os.getenv('PERSIST_RETRIES', '2'))
PERSIST_BASE_DELAY_SECONDS = float(os.getenv('PERSIST_BASE_DELAY_SECONDS', '0.1'))
PERSIST_MAX_DELAY_SECONDS = float(os.getenv('PERSIST_MAX_DELAY_SECONDS', '1.0'))
