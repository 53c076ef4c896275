"""Service layer public API.

Callers can import from :mod:`blogapi.services` without knowing the internal
structure.

Re-exports
----------
- Base primitives (from ``blogapi.services._shared.base``)
    * :class:`BaseService`
    * :class:`ServiceContext`

- Identity service (from ``blogapi.services.identity``)
    * :class:`IdentityService`
    * DTOs: :class:`UserRegisterIn`, :class:`UserAuthIn`, :class:`UserUpdateIn`,
      :class:`UserPublicOut`

- Token service (from ``blogapi.services.tokens``)
    * :class:`TokenService`, :class:`ScopePolicy`
    * DTOs: :class:`TokenConfig`, :class:`TokenEnvelope`
"""

from __future__ import annotations

# Base primitives (service base + request-scoped context)
from ._shared.base import BaseService, ServiceContext

# Identity service + DTOs
from .identity.dto import UserAuthIn, UserPublicOut, UserRegisterIn, UserUpdateIn
from .identity.service import IdentityService

# Token lifecycle
from .tokens.dto import TokenConfig, TokenEnvelope
from .tokens.scope_policy import ScopePolicy
from .tokens.service import TokenService

__all__ = [
    # Base
    "BaseService",
    "ServiceContext",
    # Identity
    "IdentityService",
    "UserRegisterIn",
    "UserAuthIn",
    "UserUpdateIn",
    "UserPublicOut",
    # Tokens
    "TokenService",
    "ScopePolicy",
    "TokenConfig",
    "TokenEnvelope",
]
