import os
import time
import logging
from typing import Optional, Tuple
from flask import Flask
from dotenv import load_dotenv
from sqlalchemy.exc import DBAPIError, OperationalError

from models import db
from utils.errors import TransientError

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "local"

# Applied to MySQL engines only; SQLite (tests) keeps SQLAlchemy's defaults.
MYSQL_ENGINE_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_recycle": 3600,  # MySQL drops idle connections after wait_timeout
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "connect_args": {"connect_timeout": 10, "read_timeout": 10, "write_timeout": 10},
}


def _env_settings(prefix: str, defaults: dict) -> dict:
    return {
        key: os.getenv(f"{prefix}_DB_{key.upper()}", defaults.get(key))
        for key in ("host", "port", "user", "password", "name")
    }


def resolve_database_uri() -> str:
    """Build the SQLAlchemy URI from the environment.

    DATABASE_URL wins when present; otherwise ENVIRONMENT picks the
    LOCAL_DB_* or ONLINE_DB_* variables and a PyMySQL URI is assembled.
    """
    load_dotenv()

    url = os.getenv("DATABASE_URL")
    if url:
        return url

    environment = os.getenv("ENVIRONMENT", DEFAULT_ENVIRONMENT).lower()
    logger.info(f"Database environment: {environment}")

    if environment == "local":
        cfg = _env_settings(
            "LOCAL",
            {"host": "localhost", "port": "3306", "user": "root", "password": "", "name": "school_assessments"},
        )
    elif environment in ("production", "online"):
        cfg = _env_settings("ONLINE", {"port": "3306"})
        missing = [k for k in ("host", "user", "name") if not cfg[k]]
        if missing:
            raise ValueError(
                "Missing online database settings: "
                + ", ".join(f"ONLINE_DB_{k.upper()}" for k in missing)
            )
    else:
        raise ValueError(
            f"Unknown ENVIRONMENT {environment!r}; expected 'local', 'production' or 'online'"
        )

    return (
        f"mysql+pymysql://{cfg['user']}:{cfg['password'] or ''}"
        f"@{cfg['host']}:{cfg['port']}/{cfg['name']}"
    )


def _mask_uri(uri: str) -> str:
    # user:password@host -> user:***@host
    if "@" not in uri or "://" not in uri:
        return uri
    scheme, rest = uri.split("://", 1)
    creds, host = rest.rsplit("@", 1)
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


class DatabaseConnection:
    """Binds the shared SQLAlchemy instance to an app and runs startup checks."""

    def __init__(self, app: Optional[Flask] = None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        self.app = app
        if not app.config.get("SQLALCHEMY_DATABASE_URI"):
            app.config["SQLALCHEMY_DATABASE_URI"] = resolve_database_uri()
        app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("mysql"):
            app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", MYSQL_ENGINE_OPTIONS)
        logger.info(f"Database URI configured: {_mask_uri(db_uri)}")

        if "sqlalchemy" in app.extensions:
            logger.info("SQLAlchemy already bound to this app")
            return
        db.init_app(app)

    def wait_until_reachable(self, max_retries: int = 3) -> bool:
        """SELECT 1 with exponential backoff between attempts."""
        if self.app is None:
            logger.error("DatabaseConnection used before init_app")
            return False

        delay = 1
        for attempt in range(1, max_retries + 1):
            with self.app.app_context():
                ok, message = check_database_connectivity()
            if ok:
                logger.info("Database reachable")
                return True
            logger.warning(f"Database check {attempt}/{max_retries} failed: {message}")
            if attempt < max_retries:
                time.sleep(delay)
                delay *= 2
        logger.error(f"Database unreachable after {max_retries} attempts")
        return False

    def ensure_schema(self) -> bool:
        """Create any missing tables; existing tables are left alone."""
        try:
            with self.app.app_context():
                db.create_all()
        except Exception as e:
            logger.error(f"Creating tables failed: {str(e)}")
            return False
        logger.info("Database tables ready")
        return True

    def init_database(self) -> bool:
        logger.info("Starting database initialization...")
        return self.wait_until_reachable() and self.ensure_schema()


def check_database_connectivity() -> Tuple[bool, str]:
    """Run SELECT 1 inside the current app context. Return (ok, message)."""
    try:
        with db.engine.connect() as connection:
            connection.execute(db.text("SELECT 1"))
        return True, "Connected and SELECT 1 succeeded"
    except Exception as e:
        return False, f"DB connection failed: {e}"


def commit_or_rollback(action: str):
    """Commit the current session; roll back and raise TransientError on DB failure."""
    try:
        db.session.commit()
    except (OperationalError, DBAPIError) as e:
        db.session.rollback()
        logger.error(f"Failed to {action}: {str(e)}")
        raise TransientError(f"Could not {action}; please try again") from e
    except Exception:
        db.session.rollback()
        raise


def flush_or_rollback(action: str):
    """Flush pending changes (assigning ids) with the same failure mapping as commits."""
    try:
        db.session.flush()
    except (OperationalError, DBAPIError) as e:
        db.session.rollback()
        logger.error(f"Failed to {action}: {str(e)}")
        raise TransientError(f"Could not {action}; please try again") from e
    except Exception:
        db.session.rollback()
        raise
