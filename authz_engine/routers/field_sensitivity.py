from __future__ import annotations

from fastapi import APIRouter, Depends

from authz_engine.engine.sensitivity import SensitivityRegistry
from authz_engine.schemas.permissions import FieldSensitivityOut, SensitivityTierOut
from authz_engine.security.dependencies import get_permission_cache, get_sensitivity_registry

router = APIRouter(prefix="/field-sensitivity", tags=["field-sensitivity"], dependencies=[Depends(get_permission_cache)])


@router.get("/tiers", response_model=list[SensitivityTierOut])
def list_tiers() -> list[dict[str, str]]:
    return SensitivityRegistry.tiers()


@router.get("/{table_name}", response_model=list[FieldSensitivityOut])
def list_table_overrides(
    table_name: str,
    registry: SensitivityRegistry = Depends(get_sensitivity_registry),
) -> list[dict[str, object]]:
    return [
        {
            "table_name": c.table_name,
            "field_name": c.field_name,
            "sensitivity": c.sensitivity.value,
            "masking_type": c.masking_type,
            "min_sensitivity": c.min_sensitivity.value if c.min_sensitivity else None,
            "display_order": c.display_order,
            "display_name": c.display_name,
            "description": c.description,
        }
        for c in registry.overrides(table_name)
    ]
