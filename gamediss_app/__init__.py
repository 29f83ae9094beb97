# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import time
import uuid
import atexit

from flask import Flask, jsonify, request
from flask import g


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


def create_app(settings=None, engine=None, start_engine=True, config=None):
    """
    Create and configure an instance of the Flask application.

    Args:
        settings: ResolverSettings (defaults to ResolverSettings.from_env())
        engine: Prebuilt engine, mainly for tests (defaults to one built
            from settings with the real Steam providers)
        start_engine: Start the engine loop thread and first catalog load
        config: Mapping applied over the environment-derived app config
    """
    app = Flask(__name__, instance_relative_config=True)

    # =============================================================================
    # CONFIGURATION
    # =============================================================================
    app.config.from_mapping(
        JSON_SORT_KEYS=False,
        HOST=os.environ.get('FLASK_HOST', '127.0.0.1'),
        PORT=int(os.environ.get('FLASK_PORT', '5000')),
        DEBUG=_env_flag('FLASK_DEBUG'),
        DISABLE_RATE_LIMITING=_env_flag('DISABLE_RATE_LIMITING'),
        WAIT_FOR_CATALOG=_env_flag('WAIT_FOR_CATALOG'),
        ENGINE_REQUEST_TIMEOUT=float(os.environ.get('ENGINE_REQUEST_TIMEOUT', '15')),
    )
    app.config.update(config or {})
    app.json.sort_keys = False

    # =============================================================================
    # LOGGING and RATE LIMITING
    # =============================================================================
    from .log import log, debug_log_event
    from .rate_limit import init_rate_limiting

    init_rate_limiting(app)

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def debug_request_log(response):
        try:
            duration_ms = None
            start_time = getattr(g, 'request_start', None)
            if start_time:
                duration_ms = int((time.time() - start_time) * 1000)
            debug_log_event({
                'event': 'request',
                'request_id': getattr(g, 'request_id', None),
                'method': request.method,
                'path': request.path,
                'query': request.query_string.decode('utf-8', errors='ignore'),
                'status': response.status_code,
                'duration_ms': duration_ms,
                'remote_addr': request.remote_addr,
            })
        except Exception as exc:
            log(f"⚠️ Debug log error: {exc}")
        return response

    @app.teardown_request
    def debug_exception_log(error=None):
        if not error:
            return
        try:
            debug_log_event({
                'event': 'exception',
                'request_id': getattr(g, 'request_id', None),
                'method': request.method if request else None,
                'path': request.path if request else None,
                'error_type': error.__class__.__name__,
                'error': str(error)
            })
        except Exception as exc:
            log(f"⚠️ Debug exception log error: {exc}")

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({'error': 'Internal server error'}), 500

    # =============================================================================
    # RESOLUTION ENGINE
    # =============================================================================
    from .config import ResolverSettings
    from .extensions import EngineRunner
    from .resolution import ResolutionEngine

    if engine is None:
        settings = settings or ResolverSettings.from_env()
        engine = ResolutionEngine.from_settings(settings)

    runner = EngineRunner(engine, request_timeout=app.config['ENGINE_REQUEST_TIMEOUT'])
    app.extensions['gamediss_engine'] = runner

    if start_engine:
        runner.start(wait_for_catalog=app.config['WAIT_FOR_CATALOG'])
        atexit.register(runner.stop)

    # =============================================================================
    # BLUEPRINTS & ROUTES
    # =============================================================================
    from .routes.lookup_api import lookup_bp

    app.register_blueprint(lookup_bp)

    print("=" * 60)
    print("  GameDiss - Game Identity Resolution")
    print("=" * 60)
    print(f"\n🧩 Fields: {', '.join(sorted(engine.available_fields))}")
    print(f"🌐 Server: http://{app.config['HOST']}:{app.config['PORT']}")
    if app.config['DEBUG']:
        print("⚠️  Debug mode is ON - do not use in production!")
    print("=" * 60)

    return app
