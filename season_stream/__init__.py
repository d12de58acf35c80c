"""Application factory for the season-stream FastAPI service."""

from .config import ServerSettings
from .main import create_app

__all__ = ["ServerSettings", "create_app"]
