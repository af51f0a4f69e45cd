import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .extensions import bcrypt, db, login_manager, mail, migrate
from .errors import WorkflowError


def create_app(config_object="config.Config"):
    app = Flask(__name__)

    # --- Core configuration ---
    app.config.from_object(config_object)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    # --- Init extensions ---
    db.init_app(app)
    _migrations_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "migrations"))
    migrate.init_app(app, db, directory=_migrations_dir)
    login_manager.init_app(app)
    bcrypt.init_app(app)
    mail.init_app(app)

    from .services.notification_hub import register_session_hooks
    from .services.user_cache import init_user_cache

    register_session_hooks()
    init_user_cache(app)

    # --- Flask-Login: bearer session tokens, no cookies ---
    from .decorators.session_security import bearer_token
    from .models import Account
    from .services.session_management_service import SessionManagementService

    @login_manager.request_loader
    def load_user_from_request(request):
        token = bearer_token()
        if not token:
            return None
        account_id = SessionManagementService.validate_session(token)
        if not account_id:
            return None
        return db.session.get(Account, account_id)

    # --- Errors: JSON everywhere ---
    @app.errorhandler(WorkflowError)
    def handle_workflow_error(exc):
        if exc.status_code >= 500:
            app.logger.error("Request failed: %s", exc.code)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({
            "success": False,
            "error": (exc.name or "error").lower().replace(" ", "_"),
            "message": exc.description,
        }), exc.code

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Cache-Control'] = 'no-store'
        return response

    # --- Register blueprints ---
    from .routes.auth import bp as auth_bp
    from .routes.session_routes import bp as sessions_bp
    from .routes.billboards import bp as billboards_bp
    from .routes.kyc import bp as kyc_bp
    from .routes.assignments import bp as assignments_bp
    from .routes.site_visits import bp as site_visits_bp
    from .routes.admin_routes import bp as admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(billboards_bp)
    app.register_blueprint(kyc_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(site_visits_bp)
    app.register_blueprint(admin_bp)

    # --- CLI commands ---
    from .cli_commands import cleanup_sessions_cmd, create_admin_cmd
    app.cli.add_command(create_admin_cmd)
    app.cli.add_command(cleanup_sessions_cmd)

    return app
