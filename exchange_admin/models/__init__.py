"""模型集合。"""

from .admin_user import AdminUser
from .permission import AdminRole, Permission, Resource, RolePermission, UserPermissions
from .permission_template import PermissionTemplate
from .principal import SYSTEM_PRINCIPAL, Principal
from .role import Role
from .role_assignment import UserRoleAssignment

DOCUMENT_MODELS = [Role, UserRoleAssignment, PermissionTemplate, AdminUser]

__all__ = [
    "AdminRole",
    "AdminUser",
    "DOCUMENT_MODELS",
    "Permission",
    "PermissionTemplate",
    "Principal",
    "Resource",
    "Role",
    "RolePermission",
    "SYSTEM_PRINCIPAL",
    "UserPermissions",
    "UserRoleAssignment",
]
