"""Environment-aware configuration for the SwachhSetu API."""
import os
import tempfile
from datetime import timedelta


class BaseConfig:
    def __init__(self) -> None:
        # Defaults for local dev: SQLite db and a non-empty secret. Override via env for production.
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        # If DATABASE_URL points to a placeholder host (e.g., db_host) or is missing, fall back to SQLite for local dev.
        if db_url and "db_host" not in db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'swachhsetu.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
        }
        self.JSON_SORT_KEYS = False
        self.JWT_ALGORITHM = "HS256"
        self.JWT_EXPIRES = timedelta(hours=int(os.getenv("JWT_EXPIRES_HOURS", 24 * 7)))
        self.CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
        self.SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "threading")
        self.NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org")
        self.GEOCODING_USER_AGENT = os.getenv("GEOCODING_USER_AGENT", "SwachhSetu/1.0 (Hygiene Reporting App)")
        self.GEOCODING_TIMEOUT = float(os.getenv("GEOCODING_TIMEOUT", 10))
        self.AI_SERVICE_URL = os.getenv("AI_SERVICE_URL", "http://localhost:8000")
        self.AI_SERVICE_TIMEOUT = float(os.getenv("AI_SERVICE_TIMEOUT", 30))
        self.AI_LINGUISTIC_TIMEOUT = float(os.getenv("AI_LINGUISTIC_TIMEOUT", 60))
        self.AI_MAX_TRANSCRIPT_CHARS = int(os.getenv("AI_MAX_TRANSCRIPT_CHARS", 5000))
        self.AI_MAX_CHAT_CHARS = int(os.getenv("AI_MAX_CHAT_CHARS", 1000))
        self.MAX_IMAGE_UPLOAD_BYTES = int(os.getenv("MAX_IMAGE_UPLOAD_BYTES", 10 * 1024 * 1024))
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 16 * 1024 * 1024))
        self.POINTS_REPORT_SUBMITTED = int(os.getenv("POINTS_REPORT_SUBMITTED", 10))
        self.POINTS_REPORT_RESOLVED = int(os.getenv("POINTS_REPORT_RESOLVED", 20))
        self.POINTS_COMMENT_POSTED = int(os.getenv("POINTS_COMMENT_POSTED", 5))
        self.REPORTS_PER_PAGE = int(os.getenv("REPORTS_PER_PAGE", 10))
        self.ADMIN_REPORTS_PER_PAGE = int(os.getenv("ADMIN_REPORTS_PER_PAGE", 20))
        self.BULK_UPDATE_MAX_IDS = int(os.getenv("BULK_UPDATE_MAX_IDS", 200))
        self.LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS", 10))
        self.LOGIN_ATTEMPT_WINDOW = int(os.getenv("LOGIN_ATTEMPT_WINDOW", 900))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@swachhsetu.in")
        self.DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "Admin@12345!")


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        # In-memory SQLite uses a static pool that rejects sizing options.
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.DEFAULT_ADMIN_EMAIL = ""
        self.DEFAULT_ADMIN_PASSWORD = ""
        self.LOG_LEVEL = "WARNING"
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(tempfile.gettempdir(), "swachhsetu-test-logs"))
