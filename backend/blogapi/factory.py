"""Application factory wiring Flask extensions and blueprints."""

from __future__ import annotations

from flask import Flask

from blogapi.core.config import BaseConfig, get_config
from blogapi.core.logger import configure_logging, init_app as init_logging


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    Parameters
    ----------
    config:
        Configuration object, import path or class. ``None`` selects the
        class named by ``APP_ENV`` (see :func:`blogapi.core.config.get_config`).
    instance_relative_config:
        Whether to also load ``instance/<instance_config_filename>``.
    instance_config_filename:
        Optional per-deployment overrides file; silently skipped when absent.
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Client IP binding and token origins depend on X-Forwarded-* being honored
    from blogapi.core import proxy

    proxy.init_app(app)

    from blogapi.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from blogapi.core import cors

    cors.init_app(app)

    from blogapi.api import init_app as init_api

    init_api(app)

    from blogapi.core import errors

    errors.init_app(app)

    from blogapi import cli as app_cli

    app_cli.init_app(app)

    return app
