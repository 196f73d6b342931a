import logging
import os
import sys
from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from flask_wtf.csrf import CSRFProtect, generate_csrf

from utils.db_conn import DatabaseConnection, check_database_connectivity
from utils.errors import register_error_handlers
from utils.live import initialize_live, register_socketio_handlers

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEV_SECRET_KEY = "dev-secret-key-change-in-production"

csrf = CSRFProtect()
socketio = SocketIO(cors_allowed_origins="*")
register_socketio_handlers(socketio)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def create_app(config_overrides: dict | None = None) -> Flask:
    """Build the Flask app.

    Configuration comes from the environment (.env is loaded by the DB
    helper); ``config_overrides`` is applied last, which is how tests swap in
    an in-memory SQLite database.
    """
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", DEV_SECRET_KEY)
    app.config["STRICT_ASSESSMENT_TYPES"] = _env_flag("STRICT_ASSESSMENT_TYPES", False)
    app.config["WTF_CSRF_ENABLED"] = _env_flag("WTF_CSRF_ENABLED", True)
    app.config["LIVE_UPDATES_ENABLED"] = _env_flag("LIVE_UPDATES_ENABLED", True)
    if config_overrides:
        app.config.update(config_overrides)

    DatabaseConnection(app)
    csrf.init_app(app)
    socketio.init_app(app)
    initialize_live(socketio if app.config["LIVE_UPDATES_ENABLED"] else None, logger)
    register_error_handlers(app)

    from blueprints.assessments_routes import assessments_bp
    from blueprints.exam_timetable_routes import exam_timetable_bp
    from blueprints.reports_routes import reports_bp

    app.register_blueprint(assessments_bp)
    app.register_blueprint(exam_timetable_bp)
    app.register_blueprint(reports_bp)

    # API: GET "/welcome"
    # Purpose: Returns a simple JSON welcome message (connectivity check).
    @app.route("/welcome", methods=["GET"])
    def welcome():
        logger.info(f"Request received: {request.method} {request.path}")
        return jsonify({"message": "Welcome to the assessment marks service!"})

    # API: GET "/api/health"
    # Purpose: Database reachability for load balancers and operators.
    @app.route("/api/health", methods=["GET"])
    def health():
        ok, message = check_database_connectivity()
        return jsonify({"database": ok, "message": message}), (200 if ok else 503)

    # API: GET "/api/csrf-token"
    # Purpose: Token browser clients send back in the X-CSRFToken header.
    @app.route("/api/csrf-token", methods=["GET"])
    def csrf_token():
        return jsonify({"csrf_token": generate_csrf()})

    return app


def run_startup_checks_or_exit(app: Flask):
    """Check the database and create missing tables; exit the process on failure."""
    logger.info("Running startup checks...")
    db_helper = DatabaseConnection()
    db_helper.app = app
    if db_helper.init_database():
        logger.info("All systems green. Starting server...")
        return
    logger.error("Startup checks failed. Aborting launch.")
    sys.exit(1)


app = create_app()


if __name__ == "__main__":
    logger.info("Application startup initiated")
    run_startup_checks_or_exit(app)

    # Only start the reloader in development
    use_reloader = os.environ.get("WERKZEUG_RUN_MAIN") != "true"

    socketio.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", 5000)),
        debug=_env_flag("FLASK_DEBUG", False),
        use_reloader=use_reloader,
    )
