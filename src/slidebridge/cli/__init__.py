"""CLI module for slidebridge.

Provides commands to encode and decode annotation payloads, import TMA
grids and answers, and upload answers for a slide.
"""

from __future__ import annotations

from slidebridge.cli.main import app

__all__ = ["app"]
