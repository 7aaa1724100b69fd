import logging

import click
from dotenv import load_dotenv
from flask import Flask
from flasgger import Swagger
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .errors import register_error_handlers
from .extensions import db, migrate, jwt, ma
from .middleware.request_id import init_request_id
from .models.token_blocklist import TokenBlocklist
from .services.rate_limiter import init_rate_limiter
from .swagger_config import swagger_template

load_dotenv()


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    Swagger(app, template=swagger_template(app))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)
    init_rate_limiter(app)

    # Middleware + errors
    proxies = app.config.get("PROXY_FIX_X_FOR", 0)
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies, x_proto=proxies)
    init_request_id(app)
    register_error_handlers(app)

    # Blueprint imports
    from .api.auth.routes import auth_bp
    from .api.tokens.routes import tokens_bp
    from .api.voting.routes import voting_bp
    from .api.election.routes import election_bp
    from .api.results.routes import results_bp
    from .api.roster.routes import roster_bp
    from .api.admin.routes import admin_bp

    # Blueprints
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(tokens_bp, url_prefix="/api/tokens")
    app.register_blueprint(voting_bp, url_prefix="/api/votes")
    app.register_blueprint(election_bp, url_prefix="/api/election")
    app.register_blueprint(results_bp, url_prefix="/api/results")
    app.register_blueprint(roster_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    # Health check
    @app.get("/health")
    def health():
        return {"status": "ok"}, 200

    # JWT token revocation check
    @jwt.token_in_blocklist_loader
    def is_token_revoked(jwt_header, jwt_payload) -> bool:
        jti = jwt_payload.get("jti")
        if not jti:
            return True
        return TokenBlocklist.is_blocklisted(jti)

    register_commands(app)

    return app


def register_commands(app: Flask) -> None:
    from .services.expiry_sweeper import sweep_expired_tokens
    from .services.rate_limiter import get_rate_limiter
    from .models.user import User
    from .utils.security import password_problem

    @app.cli.command("sweep-tokens")
    @click.option("--timeout", "timeout_minutes", type=click.IntRange(min=1), default=None,
                  help="Minutes after activation before an unscanned token expires.")
    def sweep_tokens(timeout_minutes):
        """Expire unscanned ballot tokens and purge stale rate-limit state."""
        result = sweep_expired_tokens(timeout_minutes)
        purged = get_rate_limiter().cleanup()
        click.echo(
            f"expired={result.expired_count} absent={result.absent_count} "
            f"skipped={result.skipped_count} rate_limit_rows_purged={purged}"
        )

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.argument("password")
    def create_admin(username, password):
        """Create an administrator account."""
        problem = password_problem(password)
        if problem:
            raise click.BadParameter(problem, param_hint="PASSWORD")

        username = username.strip().lower()
        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"User {username} already exists")

        user = User(username=username, role=User.ROLE_ADMIN)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created administrator {username}")
