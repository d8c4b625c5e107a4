"""Road-network flood-risk filtering and statistics service."""

from .config import Config  # noqa: F401
from .app import create_app  # noqa: F401

__version__ = "0.1.0"

__all__ = ["Config", "create_app", "__version__"]
