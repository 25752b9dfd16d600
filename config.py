import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y")


# Environment configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "app.log")

# AI provider selection ('openai', 'groq', 'deepseek' or 'mock')
AI_PROVIDER = os.getenv("AI_PROVIDER", "openai").strip().lower()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com").rstrip("/")
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "60"))

# Prompt template overrides (optional .txt files)
PROMPTS_DIR = os.getenv("PROMPTS_DIR", "config/prompts")

# Meta / Instagram Graph API
META_API_VERSION = os.getenv("META_API_VERSION", "v21.0")
META_API_BASE = os.getenv("META_API_BASE", f"https://graph.facebook.com/{META_API_VERSION}").rstrip("/")
META_WEBHOOK_VERIFY_TOKEN = os.getenv("META_WEBHOOK_VERIFY_TOKEN", "viloai_webhook_token")
META_APP_SECRET = os.getenv("META_APP_SECRET")
INSTAGRAM_REQUEST_TIMEOUT = float(os.getenv("INSTAGRAM_REQUEST_TIMEOUT", "30"))
COMMENT_SYNC_POST_LIMIT = int(os.getenv("COMMENT_SYNC_POST_LIMIT", "10"))

# Conversation context for DM classification
CONTEXT_WINDOW_MINUTES = int(os.getenv("CONTEXT_WINDOW_MINUTES", "10"))
CONTEXT_MAX_MESSAGES = int(os.getenv("CONTEXT_MAX_MESSAGES", "5"))

# Monthly analysed-message limits per plan (None = unlimited)
PLAN_MESSAGE_LIMITS = {
    "free": 50,
    "basic": 500,
    "premium": 2000,
    "enterprise": None,
}
DEFAULT_PLAN = os.getenv("DEFAULT_PLAN", "free")

DB_CONFIG = {
    'host': os.getenv("DB_HOST", "localhost:3306"),
    'database': os.getenv("DB_DATABASE", "viloai"),
    'user': os.getenv("DB_USER", "viloai"),
    'password': os.getenv("DB_PASSWORD", ""),
    'charset': os.getenv("DB_CHARSET", "utf8mb4"),
}
DB_SSL = _env_flag("DB_SSL", "false")

# Full SQLAlchemy URL; takes precedence over DB_CONFIG when set
DATABASE_URL = os.getenv("DATABASE_URL")
