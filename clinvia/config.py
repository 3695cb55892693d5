import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinvia.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Shared key used by automations (n8n, AI agents, cron) to call the integration API
SCHEDULING_API_KEY = os.getenv("SCHEDULING_API_KEY")

# JWT secret of the auth provider, used to identify panel agents
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Timezone used when a tenant has no scheduling settings
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Sao_Paulo")

# Google Calendar OAuth Configuration
# OAuth flow: Google → Frontend → Frontend sends code + state to Backend API
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{FRONTEND_URL}/auth/google-calendar")

# WhatsApp gateway (Uazapi)
UAZAPI_BASE_URL = os.getenv("UAZAPI_BASE_URL", "https://clinvia.uazapi.com").rstrip("/")
UAZAPI_TIMEOUT_SECONDS = float(os.getenv("UAZAPI_TIMEOUT_SECONDS", "10"))
UAZAPI_ADMIN_TOKEN = os.getenv("UAZAPI_ADMIN_TOKEN")

# Public base URL of this API, registered as the gateway webhook target
PUBLIC_API_URL = os.getenv("PUBLIC_API_URL", "http://localhost:8000").rstrip("/")

# Shared secret for gateway webhook signatures - signature check is skipped when unset
WEBHOOK_HMAC_SECRET = os.getenv("WEBHOOK_HMAC_SECRET")

# Webhook rate limiting (per client IP)
WEBHOOK_RATE_LIMIT = int(os.getenv("WEBHOOK_RATE_LIMIT", "200"))
WEBHOOK_RATE_WINDOW_SECONDS = int(os.getenv("WEBHOOK_RATE_WINDOW_SECONDS", "60"))
