from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from authz_engine.engine.levels import DATA_LEVEL_ORDER
from authz_engine.engine.sensitivity import MASKING_NONE, FieldSensitivityConfig, SensitivityRegistry


class SensitivityConfigError(ValueError):
    """Raised when the field sensitivity YAML file is missing its root key or fails validation."""


class FieldRule(BaseModel):
    field: str
    sensitivity: str = "basic"
    masking: str = MASKING_NONE
    min_sensitivity: str | None = None
    display_name: str | None = None
    description: str | None = None
    order: int = 0

    @field_validator("sensitivity", "min_sensitivity")
    @classmethod
    def _known_tier(cls, value: str | None) -> str | None:
        if value is None:
            return value
        normalized = value.strip().lower()
        if normalized not in {level.value for level in DATA_LEVEL_ORDER}:
            raise ValueError(f"unknown sensitivity tier {value!r}")
        return normalized


class TableRules(BaseModel):
    table: str
    fields: list[FieldRule] = Field(default_factory=list)


class FieldSensitivityFile(BaseModel):
    tables: list[TableRules] = Field(default_factory=list)

    def to_configs(self) -> list[FieldSensitivityConfig]:
        configs: list[FieldSensitivityConfig] = []
        for table in self.tables:
            for rule in table.fields:
                configs.append(
                    FieldSensitivityConfig(
                        table_name=table.table,
                        field_name=rule.field,
                        sensitivity=rule.sensitivity,
                        masking_type=rule.masking,
                        min_sensitivity=rule.min_sensitivity,
                        display_order=rule.order,
                        display_name=rule.display_name,
                        description=rule.description,
                    )
                )
        return configs


def load_field_sensitivity_config(path: Path) -> list[FieldSensitivityConfig]:
    """
    Read tenant field-sensitivity overrides from YAML.

    Expected shape:

        field_sensitivity:
          tables:
            - table: core_users
              fields:
                - field: personal_email
                  sensitivity: company
                  masking: email
    """

    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "field_sensitivity" not in raw:
        raise SensitivityConfigError(f"Missing top-level 'field_sensitivity' key in config: {path}")

    try:
        model = FieldSensitivityFile.model_validate(raw["field_sensitivity"] or {})
    except ValidationError as exc:
        raise SensitivityConfigError(f"Invalid field sensitivity config {path}: {exc}") from exc
    return model.to_configs()


def build_registry(path: Path | None, stored: Iterable[FieldSensitivityConfig] = ()) -> SensitivityRegistry:
    """
    Registry seeded from the YAML file at ``path`` (when it exists), then ``stored`` rows.

    Stored rows win over the file for the same field. Entries below a system
    minimum are clamped with a warning rather than rejected.
    """

    configs: list[FieldSensitivityConfig] = []
    if path is not None and path.exists():
        configs.extend(load_field_sensitivity_config(path))
    configs.extend(stored)
    return SensitivityRegistry(configs)
