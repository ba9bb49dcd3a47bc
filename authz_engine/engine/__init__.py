"""
Authorization and data-sensitivity engine.

This package has no dependency on the web or persistence layers
(authz_engine.db, authz_engine.security, ...). Feed ``PermissionCacheLoader``
a ``PermissionDataPort`` and ask ``PermissionCacheManager`` for snapshots;
everything in ``resolver`` and ``masking`` is a pure function of a snapshot.
"""

from .context import (
    OrgContext,
    PermissionCache,
    PermissionCheckContext,
    PermissionCheckResult,
    Role,
    TagRule,
)
from .grammar import ParsedPermission, PermissionCodeError, build_permission, parse_permission
from .levels import DataLevel, Scope
from .loader import OrgAssignment, PermissionCacheLoader, PermissionDataPort, PortCapabilities, RoleGrant
from .manager import PermissionCacheManager
from .masking import (
    MaskingType,
    get_allowed_fields,
    get_editable_fields,
    mask_user_data,
    mask_users_data,
    mask_value,
)
from .resolver import can_access_data_level, check_permission, get_max_data_level
from .sensitivity import FieldSensitivityConfig, SensitivityRegistry, SensitivityValidationError
from .store import CacheStoreError, InMemoryPermissionCacheStore, PermissionCacheStore

__all__ = [
    "CacheStoreError",
    "DataLevel",
    "FieldSensitivityConfig",
    "InMemoryPermissionCacheStore",
    "MaskingType",
    "OrgAssignment",
    "OrgContext",
    "ParsedPermission",
    "PermissionCache",
    "PermissionCacheLoader",
    "PermissionCacheManager",
    "PermissionCacheStore",
    "PermissionCheckContext",
    "PermissionCheckResult",
    "PermissionCodeError",
    "PermissionDataPort",
    "PortCapabilities",
    "Role",
    "RoleGrant",
    "Scope",
    "SensitivityRegistry",
    "SensitivityValidationError",
    "TagRule",
    "build_permission",
    "can_access_data_level",
    "check_permission",
    "get_allowed_fields",
    "get_editable_fields",
    "get_max_data_level",
    "mask_user_data",
    "mask_users_data",
    "mask_value",
    "parse_permission",
]
