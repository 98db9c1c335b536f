from .config import load_config
from .extensions import init_extensions
from .logging_config import configure_logging


def create_app():
    """App factory entrypoint.

    Routes and process-wide backends live in ``runtime``; importing it builds
    them once and registers the blueprints.
    """
    config = load_config()
    configure_logging(config.log_level)

    from .runtime import app

    init_extensions(app, config)
    return app
