"""
Flask application factory for Ledger Audit.
"""
from flask import Flask
from flask_caching import Cache
from pathlib import Path
import logging
import os

from config import config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Initialize cache (will be configured in create_app)
cache = Cache()


def create_app(config_name='default', overrides=None):
    """
    Application factory pattern.

    Args:
        config_name: Configuration name (for future environments)
        overrides: Optional Flask config values applied last (tests use this)

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # App configuration
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['MAX_CONTENT_LENGTH'] = 50 * 1024 * 1024  # 50MB max file size
    app.config['UPLOAD_FOLDER'] = Path(config.storage.base_dir)
    app.json.sort_keys = False

    # Cache configuration
    # Use SimpleCache for single-worker deployments
    # For multi-worker: switch to Redis or FileSystemCache
    app.config['CACHE_TYPE'] = os.getenv('CACHE_TYPE', 'SimpleCache')
    app.config['CACHE_DEFAULT_TIMEOUT'] = int(os.getenv('CACHE_DEFAULT_TIMEOUT', '600'))

    if overrides:
        app.config.update(overrides)
    app.config['UPLOAD_FOLDER'] = Path(app.config['UPLOAD_FOLDER'])

    # Initialize cache with app
    cache.init_app(app)

    app.logger.info(f"[CACHE] Initialized {app.config['CACHE_TYPE']} with {app.config['CACHE_DEFAULT_TIMEOUT']}s timeout")

    # Ensure runs folder exists
    app.config['UPLOAD_FOLDER'].mkdir(parents=True, exist_ok=True)

    # Register blueprints
    from web.views import bp as main_bp
    app.register_blueprint(main_bp)

    app.logger.info(f"[APP] Ledger Audit started ({config_name}), runs stored in {app.config['UPLOAD_FOLDER']}")
    return app
