"""slidebridge: annotation and TMA exchange with a slide-hosting service."""

__version__ = "0.1.0"
