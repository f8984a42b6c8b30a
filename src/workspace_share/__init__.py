"""Workspace sharing: access control and share lifecycle service."""

from .main import AppDependencies, ShareEngine, create_app
from .settings import ShareSettings

__all__ = ["AppDependencies", "ShareEngine", "ShareSettings", "create_app"]
