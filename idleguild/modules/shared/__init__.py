"""Shared service-layer building blocks: base classes and domain exceptions."""

from idleguild.modules.shared.base_repository import BaseRepository
from idleguild.modules.shared.base_service import BaseService

__all__ = ["BaseRepository", "BaseService"]
