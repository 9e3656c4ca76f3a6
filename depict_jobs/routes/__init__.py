"""HTTP routes for the job queue service."""

from . import admin, health

__all__ = ["admin", "health"]
