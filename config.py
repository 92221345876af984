import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (Celery broker) ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Microsoft Graph (email) ---
    MS_GRAPH_TENANT_ID = os.environ.get("MS_GRAPH_TENANT_ID")
    MS_GRAPH_CLIENT_ID = os.environ.get("MS_GRAPH_CLIENT_ID")
    MS_GRAPH_CLIENT_SECRET = os.environ.get("MS_GRAPH_CLIENT_SECRET")
    SENDER_EMAIL = os.environ.get("SENDER_EMAIL")

    # --- Group chat bridge ---
    CHAT_SERVICE_URL = os.environ.get("CHAT_SERVICE_URL")
    CHAT_SERVICE_TOKEN = os.environ.get("CHAT_SERVICE_TOKEN")
    CHAT_READY_TIMEOUT = float(os.environ.get("CHAT_READY_TIMEOUT", "300"))
    CHAT_CONNECT_ATTEMPTS = int(os.environ.get("CHAT_CONNECT_ATTEMPTS", "15"))

    # --- Dispatch throttling (seconds between successive sends) ---
    DISPATCH_DELAY_MIN = float(os.environ.get("DISPATCH_DELAY_MIN", "2"))
    DISPATCH_DELAY_MAX = float(os.environ.get("DISPATCH_DELAY_MAX", "10"))

    # --- Scheduler ---
    ENABLE_SCHEDULER = os.environ.get("ENABLE_SCHEDULER", "true").lower() in {"1", "true", "yes"}
    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "Asia/Kolkata")

    # --- Message rendering ---
    FIRM_SIGNATURE = os.environ.get("FIRM_SIGNATURE", "Best regards,\nAccounts Team")

    # --- Misc ---
    HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


settings = Settings()
