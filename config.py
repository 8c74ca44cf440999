"""Environment-aware configuration for the Flask application."""
import os
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
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'urbanwatch.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
        }
        self.SESSION_COOKIE_HTTPONLY = True
        self.REMEMBER_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.PERMANENT_SESSION_LIFETIME = timedelta(days=30)
        self.REMEMBER_COOKIE_DURATION = timedelta(days=30)
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        # Seed official account so reports can be reviewed on first run.
        self.DEFAULT_OFFICIAL_EMAIL = os.getenv("DEFAULT_OFFICIAL_EMAIL", "official@urbanwatch.in")
        self.DEFAULT_OFFICIAL_PASSWORD = os.getenv("DEFAULT_OFFICIAL_PASSWORD", "Official@12345!")
        self.DEFAULT_OFFICIAL_CITY = os.getenv("DEFAULT_OFFICIAL_CITY", "")
        self.REPORT_UPLOAD_FOLDER = os.getenv(
            "REPORT_UPLOAD_FOLDER",
            os.path.join(os.getcwd(), "instance", "report_uploads"),
        )
        self.CERTIFICATE_DIR = os.getenv(
            "CERTIFICATE_DIR",
            os.path.join(os.getcwd(), "instance", "certificates"),
        )
        self.MAX_IMAGE_UPLOAD_BYTES = int(os.getenv("MAX_IMAGE_UPLOAD_BYTES", 8 * 1024 * 1024))
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 16 * 1024 * 1024))
        self.REPORTS_PER_PAGE = int(os.getenv("REPORTS_PER_PAGE", 20))
        self.LEADERBOARD_SIZE = int(os.getenv("LEADERBOARD_SIZE", 50))

        # Remote AI endpoint used by the retrying API client.
        self.AI_API_URL = os.getenv("AI_API_URL", "http://localhost:8000/api").rstrip("/")
        self.AI_API_TIMEOUT = int(os.getenv("AI_API_TIMEOUT", 30))
        self.AI_API_RETRY_ATTEMPTS = int(os.getenv("AI_API_RETRY_ATTEMPTS", 3))
        self.AI_API_RETRY_DELAY_MS = int(os.getenv("AI_API_RETRY_DELAY_MS", 1000))

        # simulated | remote | gemini
        self.IMAGE_ANALYZER = os.getenv("IMAGE_ANALYZER", "simulated").lower()
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_VISION_MODEL = os.getenv("GEMINI_VISION_MODEL", "gemini-2.5-flash")
        self.ANALYZER_SEED = int(os.environ["ANALYZER_SEED"]) if os.getenv("ANALYZER_SEED") else None
        self.SCAN_HOURLY_LIMIT = int(os.getenv("SCAN_HOURLY_LIMIT", 60))

        self.DRONE_DEFAULT_RADIUS_KM = float(os.getenv("DRONE_DEFAULT_RADIUS_KM", 5))
        self.DRONE_DEFAULT_ALTITUDE_M = float(os.getenv("DRONE_DEFAULT_ALTITUDE_M", 100))
        self.DRONE_MAX_RADIUS_KM = float(os.getenv("DRONE_MAX_RADIUS_KM", 25))

        self.ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")
        self.SECURE_TOKEN_HOURS = int(os.getenv("SECURE_TOKEN_HOURS", 24))


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.REMEMBER_COOKIE_SECURE = True
        self.SEND_FILE_MAX_AGE_DEFAULT = 31536000


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        # In-memory SQLite uses a singleton pool that rejects QueuePool sizing options.
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False
        self.PREFERRED_URL_SCHEME = "http"
        self.DEFAULT_OFFICIAL_EMAIL = ""
        self.DEFAULT_OFFICIAL_PASSWORD = ""
        self.IMAGE_ANALYZER = "simulated"
        self.ANALYZER_SEED = 7
        self.AI_API_RETRY_DELAY_MS = 0
        self.ENCRYPTION_KEY = ""
        self.SECRET_KEY = "testing-secret-key"
