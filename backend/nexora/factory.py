"""Application factory wiring Flask extensions and blueprints."""

from __future__ import annotations

from flask import Flask

from nexora.core.config import BaseConfig, get_config
from nexora.core.logger import configure_logging, init_app as init_logging


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config class/object, a config name (``"testing"``), or
        ``None`` to infer it from ``APP_ENV``.
    :param instance_relative_config: Load overrides from the instance folder.
    :param instance_config_filename: Instance file holding local overrides.
    :returns: Configured application.
    :rtype: flask.Flask
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    if config is None or isinstance(config, str):
        app.config.from_object(get_config(config))
    else:
        app.config.from_object(config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from nexora.core import proxy

    proxy.init_app(app)

    from nexora.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from nexora.core import cors

    cors.init_app(app)

    from nexora.api import init_app as init_api

    init_api(app)

    from nexora.core import errors

    errors.init_app(app)

    from nexora import cli as app_cli

    app_cli.init_app(app)

    return app
