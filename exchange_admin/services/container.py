"""服务装配：进程启动时构造一次，显式传给各个使用方。"""

from __future__ import annotations

from dataclasses import dataclass

from exchange_admin.config import JwtSettings
from exchange_admin.services.assignment_service import AssignmentStore
from exchange_admin.services.auth_service import AuthService
from exchange_admin.services.guard_service import AuthorizationGuard
from exchange_admin.services.revocation_service import (
    DEFAULT_REVOCATION_TTL_SECONDS,
    MemoryRevocationRegistry,
    RevocationRegistry,
)
from exchange_admin.services.role_service import RoleStore
from exchange_admin.services.template_service import TemplateStore
from exchange_admin.services.token_service import TokenService


@dataclass(frozen=True, slots=True)
class ServiceContainer:
    tokens: TokenService
    revocations: RevocationRegistry
    roles: RoleStore
    assignments: AssignmentStore
    templates: TemplateStore
    auth: AuthService
    guard: AuthorizationGuard


def build_services(
    settings: JwtSettings,
    revocations: RevocationRegistry | None = None,
    *,
    revocation_ttl_seconds: int = DEFAULT_REVOCATION_TTL_SECONDS,
) -> ServiceContainer:
    tokens = TokenService(settings)
    registry = revocations if revocations is not None else MemoryRevocationRegistry(revocation_ttl_seconds)
    roles = RoleStore()
    assignments = AssignmentStore(roles)
    auth = AuthService(tokens, registry, roles, assignments, revocation_ttl_seconds=revocation_ttl_seconds)
    return ServiceContainer(
        tokens=tokens,
        revocations=registry,
        roles=roles,
        assignments=assignments,
        templates=TemplateStore(roles),
        auth=auth,
        guard=AuthorizationGuard(tokens, registry, assignments, auth),
    )
