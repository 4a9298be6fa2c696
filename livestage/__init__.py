"""Flask application factory."""
from flask import Flask, render_template, request, jsonify
from flask_wtf.csrf import CSRFProtect
from werkzeug.exceptions import HTTPException
from livestage.database import init_db


def _wants_json():
    if request.is_json or request.path.startswith('/b/') or request.path.startswith('/share/'):
        return True
    best = request.accept_mimetypes.best_match(['application/json', 'text/html'])
    return best == 'application/json'


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Your session expired. Reload the page.'}), 400

    # Error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import os
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis pub/sub for live updates
    from livestage.services.pubsub_service import init_pubsub
    init_pubsub(app)

    # Prometheus metrics instrumentation
    from livestage.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust one reverse proxy for scheme/host
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Jinja filters
    from livestage.utils.formatters import format_cents, discount_percent, time_short
    app.jinja_env.filters['cents'] = format_cents
    app.jinja_env.filters['discount_percent'] = discount_percent
    app.jinja_env.filters['time_short'] = time_short

    # Brand context from /b/<brand_slug>/...
    from livestage.middleware import init_brand_context
    init_brand_context(app)

    # Error Handlers
    from livestage.exceptions import LivestageError

    @app.errorhandler(LivestageError)
    def handle_livestage_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"LivestageError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"LivestageError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        if _wants_json():
            return jsonify({'status': 'error', 'message': 'Not Found'}), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code != 500:
            return error
        app.logger.exception(f"Unhandled Exception: {error}")

        if _wants_json():
            return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500
        return render_template('errors/500.html'), 500

    # Register blueprints
    from livestage.blueprints.main import main_bp
    from livestage.blueprints.catalog import catalog_bp
    from livestage.blueprints.product_sets import product_sets_bp
    from livestage.blueprints.message_presets import message_presets_bp
    from livestage.blueprints.live import live_bp
    from livestage.blueprints.public import public_bp
    from livestage.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(product_sets_bp)
    app.register_blueprint(message_presets_bp)
    app.register_blueprint(live_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from livestage.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"PUBSUB_ENABLED={app.config.get('PUBSUB_ENABLED')}")

    return app
