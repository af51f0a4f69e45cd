import os
from dotenv import load_dotenv, find_dotenv
from sqlalchemy.engine import make_url

# Load .env file in development
env_path = find_dotenv()
load_dotenv(env_path)

# -----------------------------
# Database config
# -----------------------------
db_config = {
    "host": os.getenv("DB_HOST", "localhost"),
    "user": os.getenv("DB_USER"),
    "password": os.getenv("DB_PASSWORD"),
    "database": os.getenv("DB_NAME"),
    "port": int(os.getenv("DB_PORT", "3306")),
}

# Bounded timeouts for every call into the store (seconds)
db_timeouts = {
    "connect": int(os.getenv("DB_CONNECT_TIMEOUT", "10")),
    "read": int(os.getenv("DB_READ_TIMEOUT", "15")),
    "write": int(os.getenv("DB_WRITE_TIMEOUT", "15")),
    "pool": int(os.getenv("DB_POOL_TIMEOUT", "30")),
}

# -----------------------------
# Secret key for sessions
# -----------------------------
secret_key = os.getenv("SECRET_KEY", "dev-only-secret")

# -----------------------------
# Email config
# -----------------------------
email_config = {
    "server": os.getenv("MAIL_SERVER", "smtp.ethereal.email"),
    "port": int(os.getenv("MAIL_PORT", "587")),
    "use_tls": os.getenv("MAIL_USE_TLS", "True") == "True",
    "username": os.getenv("MAIL_USERNAME"),
    "password": os.getenv("MAIL_PASSWORD"),
    "default_sender": os.getenv("MAIL_DEFAULT_SENDER", "noreply@example.com"),
}


def _database_uri() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return (
        f"mysql+pymysql://{db_config['user']}:{db_config['password']}@"
        f"{db_config['host']}:{db_config['port']}/{db_config['database']}"
    )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _connect_args(driver: str) -> dict:
    """Driver-specific spelling of the connect/read/write timeouts."""
    if driver in ("pymysql", "mysqldb"):
        return {
            "connect_timeout": db_timeouts["connect"],
            "read_timeout": db_timeouts["read"],
            "write_timeout": db_timeouts["write"],
        }
    if driver in ("psycopg2", "psycopg"):
        return {"connect_timeout": db_timeouts["connect"]}
    if driver in ("pg8000", "pysqlite"):
        return {"timeout": db_timeouts["connect"]}
    return {}


def engine_options(uri: str) -> dict:
    """SQLALCHEMY_ENGINE_OPTIONS for ``uri``; pooled drivers also get recycle and pool timeouts."""
    url = make_url(uri)
    options = {"connect_args": _connect_args(url.get_driver_name())}
    if url.get_backend_name() != "sqlite":
        options.update({
            "pool_pre_ping": True,
            "pool_recycle": 1800,
            "pool_timeout": db_timeouts["pool"],
        })
    return options


# -----------------------------
# App-level Config class
# -----------------------------
class Config:
    """
    App-wide configuration (used by create_app).
    Keeps workflow thresholds and safety flags next to the connection settings.
    """
    SECRET_KEY = secret_key

    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)

    JSON_SORT_KEYS = False

    # Mail (security alerts to opted-in admins)
    MAIL_SERVER = email_config["server"]
    MAIL_PORT = email_config["port"]
    MAIL_USE_TLS = email_config["use_tls"]
    MAIL_USERNAME = email_config["username"]
    MAIL_PASSWORD = email_config["password"]
    MAIL_DEFAULT_SENDER = email_config["default_sender"]

    BCRYPT_LOG_ROUNDS = int(os.getenv("BCRYPT_LOG_ROUNDS", "12"))

    # Login rate limiting
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS = int(os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5"))
    LOGIN_RATE_LIMIT_WINDOW_MINUTES = int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_MINUTES", "15"))
    LOGIN_RATE_LIMIT_BLOCK_MINUTES = int(os.getenv("LOGIN_RATE_LIMIT_BLOCK_MINUTES", "15"))
    # Allow logins when the attempt log cannot be read
    LOGIN_RATE_LIMIT_FAIL_OPEN = _env_flag("LOGIN_RATE_LIMIT_FAIL_OPEN", True)

    # Sessions
    SESSION_EXPIRY_HOURS = int(os.getenv("SESSION_EXPIRY_HOURS", "24"))

    # Assignments
    ASSIGNMENT_UPSERT_RETRIES = int(os.getenv("ASSIGNMENT_UPSERT_RETRIES", "3"))

    # Admin notifications / caches
    ADMIN_NOTIFICATION_PAGE_SIZE = int(os.getenv("ADMIN_NOTIFICATION_PAGE_SIZE", "50"))
    USER_CACHE_TTL_SECONDS = int(os.getenv("USER_CACHE_TTL_SECONDS", "300"))
    USER_CACHE_MAXSIZE = int(os.getenv("USER_CACHE_MAXSIZE", "1000"))
    # Seconds between keepalive comments on idle notification streams
    NOTIFICATION_STREAM_KEEPALIVE_SECONDS = int(os.getenv("NOTIFICATION_STREAM_KEEPALIVE_SECONDS", "15"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_SUPPRESS_SEND = True
    BCRYPT_LOG_ROUNDS = 4
