"""Real-time group chat relay."""

from .version import __version__

__all__ = ["__version__"]
