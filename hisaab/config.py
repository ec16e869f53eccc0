import os
from dotenv import load_dotenv

load_dotenv()


def _split_list(value: str):
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Secret key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    SESSION_COOKIE_NAME = "hisaab_session"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Database config (defaults allow local run without crashing)
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", 3306))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "hisaab")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    CORS_ORIGINS = _split_list(os.environ.get("CORS_ORIGINS", "http://localhost:5173"))
    ADMIN_EMAILS = [email.lower() for email in _split_list(os.environ.get("ADMIN_EMAILS", ""))]

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Amounts at or below this are treated as settled noise
    MATERIALITY_THRESHOLD = float(os.environ.get("MATERIALITY_THRESHOLD", 1.0))
    JOIN_CODE_LENGTH = int(os.environ.get("JOIN_CODE_LENGTH", 6))

config = Config()
