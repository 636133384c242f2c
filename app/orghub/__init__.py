import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from app.orghub.auth import bp as auth_bp, load_request_id
from app.orghub.config import load_config
from app.orghub.db import init_db, teardown_db_session
from app.orghub.errors import ApiError
from app.orghub.modules.chats.api import bp as chats_bp
from app.orghub.modules.content.api import bp as content_bp
from app.orghub.modules.elections.api import bp as elections_bp
from app.orghub.modules.finances.api import bp as finances_bp
from app.orghub.modules.members.api import bp as members_bp
from app.orghub.modules.organizations.api import bp as organizations_bp
from app.orghub.modules.roles.api import bp as roles_bp
from app.orghub.routes import bp as routes_bp
from app.orghub.tokens import jwt_manager


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("app").setLevel(level)
    app.logger.setLevel(level)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False
    _configure_logging(app)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if str(app.config.get("JWT_SECRET_KEY") or "") in ("", "change-me"):
            raise RuntimeError("JWT_SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    jwt_manager.init_app(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(organizations_bp, url_prefix="/api/organizations")
    app.register_blueprint(roles_bp, url_prefix="/api/roles")
    app.register_blueprint(members_bp, url_prefix="/api/members")
    app.register_blueprint(elections_bp, url_prefix="/api/elections")
    app.register_blueprint(content_bp, url_prefix="/api")
    app.register_blueprint(finances_bp, url_prefix="/api")
    app.register_blueprint(chats_bp, url_prefix="/api")

    app.before_request(load_request_id)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        kind = (e.name or "error").lower().replace(" ", "_")
        return jsonify({"error": kind, "message": e.description}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the platform logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "server_error", "message": "Internal server error."}), 500

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve (env=%s)", env or "development")

    return app
