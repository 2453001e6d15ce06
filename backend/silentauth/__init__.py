"""Expose the application factory at package level.

``from silentauth import create_app`` builds the token service; the
renewal-protocol client lives in :mod:`silentauth.client` and does not
require Flask.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
