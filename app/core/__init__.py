"""
Core Application - Infrastructure & Base Classes

Generic, reusable building blocks shared by the domain apps (orders,
payments). No business logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - AppendOnlyMixin: Insert-only rows

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - NotFoundError, PermissionDeniedError, ConflictError

Helpers (import from core.helpers):
    - generate_token, hash_string, secrets_match, get_client_ip

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from .helpers import generate_token, get_client_ip, hash_string, secrets_match
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    # Helpers
    "generate_token",
    "hash_string",
    "secrets_match",
    "get_client_ip",
]
