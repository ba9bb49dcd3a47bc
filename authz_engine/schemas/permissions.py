from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    scope_type: str
    scope_id: str | None = None
    hierarchy_level: int
    sensitivity_access: str


class OrgContextOut(BaseModel):
    user_id: str
    department_ids: list[str]
    lob_ids: list[str]
    division_ids: list[str]
    location_ids: list[str]
    direct_report_ids: list[str]
    supervisor_ids: list[str]


class PermissionsOut(BaseModel):
    """The caller's permission snapshot, as consumed by UI permission checks."""

    user_id: str
    permissions: list[str]
    roles: list[RoleOut]
    tags: list[str]
    org_context: OrgContextOut
    is_admin: bool
    loaded_at: float
    expires_at: float


class FieldSensitivityOut(BaseModel):
    table_name: str
    field_name: str
    sensitivity: str
    masking_type: str
    min_sensitivity: str | None = None
    display_order: int = 0
    display_name: str | None = None
    description: str | None = None


class SensitivityTierOut(BaseModel):
    value: str
    label: str
    description: str
