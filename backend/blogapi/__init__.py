"""Blog API package.

Exposes :func:`blogapi.factory.create_app` so WSGI servers and the Flask CLI
can use ``blogapi:create_app`` directly.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
