"""
Field sensitivity registry.

Maps ``(table, field)`` to a sensitivity tier and a masking type. Three
layers, first hit wins:

1. Tenant overrides (admin-configured, loaded from the data store or YAML).
2. Built-in per-field defaults.
3. Prefix patterns (longest prefix first), then ``basic``/``none``.

System minimum tiers are a floor no override can go below: SSN, tax IDs and
bank fields are always ``sensitive``; pay and compensation fields at least
``company``. Overrides are validated on write and clamped on read.

The registry holds an immutable snapshot that is swapped under a lock, so
readers never see a half-applied bulk update.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterable, Mapping, Protocol

from .levels import DataLevel, coerce_data_level, data_level_includes

logger = logging.getLogger(__name__)

MASKING_NONE = "none"


class SensitivityValidationError(ValueError):
    """Raised when an override would put a field below its minimum tier."""

    def __init__(self, message: str, minimum_tier: DataLevel | None = None) -> None:
        super().__init__(message)
        self.minimum_tier = minimum_tier


@dataclass(frozen=True)
class FieldSensitivityConfig:
    table_name: str
    field_name: str
    sensitivity: DataLevel = DataLevel.BASIC
    masking_type: str = MASKING_NONE
    min_sensitivity: DataLevel | None = None
    display_order: int = 0
    display_name: str | None = None
    description: str | None = None
    is_system: bool = False

    def __post_init__(self) -> None:
        # Unknown tiers resolve to basic; the system minimum floor still applies on read.
        object.__setattr__(self, "sensitivity", coerce_data_level(self.sensitivity, DataLevel.BASIC))
        object.__setattr__(self, "min_sensitivity", coerce_data_level(self.min_sensitivity))
        object.__setattr__(self, "masking_type", (self.masking_type or MASKING_NONE).strip().lower())

    @property
    def key(self) -> tuple[str, str]:
        return (self.table_name, self.field_name)


@dataclass(frozen=True)
class TierValidation:
    valid: bool
    minimum_tier: DataLevel | None = None
    message: str | None = None


class FieldSensitivitySource(Protocol):
    def fetch_field_sensitivity(self, table_name: str | None = None) -> list[FieldSensitivityConfig]: ...


# ---- Built-in tables ---------------------------------------------------------------


SYSTEM_MINIMUM_TIERS: Mapping[str, DataLevel] = MappingProxyType(
    {
        "personal_ssn": DataLevel.SENSITIVE,
        "tax_ssn": DataLevel.SENSITIVE,
        "tax_id": DataLevel.SENSITIVE,
        "bank_account_number": DataLevel.SENSITIVE,
        "bank_routing_number": DataLevel.SENSITIVE,
        "bank_account_type": DataLevel.SENSITIVE,
        "bank_name": DataLevel.SENSITIVE,
        "bank_account_holder_name": DataLevel.SENSITIVE,
        "pay_type": DataLevel.COMPANY,
        "pay_rate": DataLevel.COMPANY,
        "pay_currency": DataLevel.COMPANY,
        "pay_frequency": DataLevel.COMPANY,
        "compensation_base": DataLevel.COMPANY,
        "compensation_bonus": DataLevel.COMPANY,
        "compensation_equity": DataLevel.COMPANY,
        "compensation_total": DataLevel.COMPANY,
    }
)

SYSTEM_MINIMUM_PREFIXES: tuple[tuple[str, DataLevel, str], ...] = (
    ("bank_", DataLevel.SENSITIVE, 'Bank fields must be "sensitive"'),
    ("pay_", DataLevel.COMPANY, 'Pay/compensation fields must be at least "company" sensitivity'),
    ("compensation_", DataLevel.COMPANY, 'Pay/compensation fields must be at least "company" sensitivity'),
)

_S, _C, _P, _B = DataLevel.SENSITIVE, DataLevel.COMPANY, DataLevel.PERSONAL, DataLevel.BASIC

DEFAULT_FIELD_CONFIGS: Mapping[str, tuple[DataLevel, str]] = MappingProxyType(
    {
        # sensitive
        "personal_ssn": (_S, "last4"),
        "tax_ssn": (_S, "last4"),
        "tax_id": (_S, "last4"),
        "bank_account_number": (_S, "last4"),
        "bank_routing_number": (_S, "last4"),
        "bank_account_type": (_S, "full"),
        "bank_name": (_S, "full"),
        "bank_account_holder_name": (_S, "full"),
        # company
        "pay_type": (_C, MASKING_NONE),
        "pay_rate": (_C, "currency"),
        "pay_currency": (_C, MASKING_NONE),
        "pay_frequency": (_C, MASKING_NONE),
        "compensation_base": (_C, "currency"),
        "compensation_bonus": (_C, "currency"),
        "compensation_equity": (_C, "currency"),
        "compensation_total": (_C, "currency"),
        "company_employee_id": (_C, MASKING_NONE),
        "company_start_date": (_C, MASKING_NONE),
        "company_hire_date": (_C, MASKING_NONE),
        "company_termination_date": (_C, MASKING_NONE),
        # personal
        "personal_dob": (_P, "date"),
        "personal_date_of_birth": (_P, "date"),
        "personal_email": (_P, "email"),
        "personal_phone": (_P, "phone"),
        "personal_phone_country_code": (_P, MASKING_NONE),
        "personal_gender": (_P, "full"),
        "personal_nationality": (_P, "full"),
        "personal_address_line1": (_P, "partial"),
        "personal_address_line2": (_P, "partial"),
        "personal_address_city": (_P, "partial"),
        "personal_address_state": (_P, MASKING_NONE),
        "personal_address_state_code": (_P, MASKING_NONE),
        "personal_address_postal_code": (_P, "partial"),
        "personal_address_country": (_P, MASKING_NONE),
        "personal_address_country_code": (_P, MASKING_NONE),
        "emergency_contact_name": (_P, "partial"),
        "emergency_contact_relationship": (_P, MASKING_NONE),
        "emergency_contact_phone": (_P, "phone"),
        "emergency_contact_email": (_P, "email"),
        "emergency_contact_address": (_P, "partial"),
        # basic
        "personal_first_name": (_B, MASKING_NONE),
        "personal_last_name": (_B, MASKING_NONE),
        "personal_preferred_name": (_B, MASKING_NONE),
        "personal_avatar_url": (_B, MASKING_NONE),
        "company_email": (_B, MASKING_NONE),
        "company_work_email": (_B, MASKING_NONE),
        "company_phone": (_B, MASKING_NONE),
        "company_phone_ext": (_B, MASKING_NONE),
        "company_title": (_B, MASKING_NONE),
        "company_department": (_B, MASKING_NONE),
        "company_division": (_B, MASKING_NONE),
        "company_location": (_B, MASKING_NONE),
        "company_employment_type": (_B, MASKING_NONE),
        "company_avatar_url": (_B, MASKING_NONE),
        "meta_id": (_B, MASKING_NONE),
        "meta_status": (_B, MASKING_NONE),
    }
)

PREFIX_PATTERNS: tuple[tuple[str, DataLevel, str], ...] = tuple(
    sorted(
        (
            ("personal_ssn", _S, "last4"),
            ("tax_ssn", _S, "last4"),
            ("tax_id", _S, "last4"),
            ("tax_", _S, "full"),
            ("bank_", _S, "last4"),
            ("pay_", _C, "currency"),
            ("compensation_", _C, "currency"),
            ("personal_dob", _P, "date"),
            ("personal_date_of_birth", _P, "date"),
            ("personal_address_", _P, "partial"),
            ("personal_email", _P, "email"),
            ("personal_phone", _P, "phone"),
            ("emergency_", _P, "partial"),
            ("company_", _B, MASKING_NONE),
            ("personal_first_name", _B, MASKING_NONE),
            ("personal_last_name", _B, MASKING_NONE),
            ("personal_preferred_name", _B, MASKING_NONE),
            ("personal_", _B, MASKING_NONE),
            ("meta_", _B, MASKING_NONE),
        ),
        key=lambda p: len(p[0]),
        reverse=True,
    )
)

SENSITIVITY_TIERS: tuple[dict[str, str], ...] = (
    {"value": "basic", "label": "Basic", "description": "Visible to all users"},
    {"value": "personal", "label": "Personal", "description": "Personal employee data"},
    {"value": "company", "label": "Company", "description": "Company-sensitive data"},
    {"value": "sensitive", "label": "Sensitive", "description": "Highly restricted"},
)


# ---- Pure helpers --------------------------------------------------------------------


def default_sensitivity(table_name: str, field_name: str) -> FieldSensitivityConfig:
    """Built-in config for a field: exact default, then prefix pattern, then basic/none."""
    exact = DEFAULT_FIELD_CONFIGS.get(field_name)
    if exact is not None:
        tier, masking = exact
        return FieldSensitivityConfig(table_name, field_name, tier, masking, is_system=True)

    for prefix, tier, masking in PREFIX_PATTERNS:
        if field_name.startswith(prefix):
            return FieldSensitivityConfig(table_name, field_name, tier, masking)

    return FieldSensitivityConfig(table_name, field_name, DataLevel.BASIC, MASKING_NONE)


def system_minimum_tier(field_name: str) -> DataLevel | None:
    exact = SYSTEM_MINIMUM_TIERS.get(field_name)
    if exact is not None:
        return exact
    for prefix, tier, _message in SYSTEM_MINIMUM_PREFIXES:
        if field_name.startswith(prefix):
            return tier
    return None


def validate_sensitivity_tier(field_name: str, tier: DataLevel | str) -> TierValidation:
    """Check ``tier`` against the system minimum for ``field_name``."""
    level = coerce_data_level(str(tier))
    if level is None:
        return TierValidation(valid=False, message=f"Unknown sensitivity tier {tier!r}")

    exact = SYSTEM_MINIMUM_TIERS.get(field_name)
    if exact is not None:
        if not data_level_includes(level, exact):
            return TierValidation(
                valid=False,
                minimum_tier=exact,
                message=f'Field "{field_name}" must be at least "{exact.value}" sensitivity',
            )
        return TierValidation(valid=True)

    for prefix, minimum, message in SYSTEM_MINIMUM_PREFIXES:
        if field_name.startswith(prefix) and not data_level_includes(level, minimum):
            return TierValidation(valid=False, minimum_tier=minimum, message=message)

    return TierValidation(valid=True)


def _clamp(config: FieldSensitivityConfig) -> FieldSensitivityConfig:
    floors = [f for f in (system_minimum_tier(config.field_name), config.min_sensitivity) if f is not None]
    tier = config.sensitivity
    for floor in floors:
        if not data_level_includes(tier, floor):
            tier = floor
    if tier is config.sensitivity:
        return config
    logger.warning(
        "field sensitivity below minimum; clamping table=%s field=%s configured=%s effective=%s",
        config.table_name,
        config.field_name,
        config.sensitivity.value,
        tier.value,
    )
    return replace(config, sensitivity=tier)


# ---- Registry ------------------------------------------------------------------------


class SensitivityRegistry:
    """
    Thread-safe registry of field sensitivity, layered over the built-in defaults.

    Usage:
        registry = SensitivityRegistry()
        registry.set_override(FieldSensitivityConfig("core_users", "personal_email", DataLevel.COMPANY, "email"))
        registry.get("core_users", "personal_email").sensitivity  # DataLevel.COMPANY
    """

    def __init__(self, overrides: Iterable[FieldSensitivityConfig] = ()) -> None:
        self._lock = threading.Lock()
        self._overrides: Mapping[tuple[str, str], FieldSensitivityConfig] = MappingProxyType(
            {c.key: _clamp(c) for c in overrides}
        )

    # ---- reads ------------------------------------------------------------------

    def get(self, table_name: str, field_name: str) -> FieldSensitivityConfig:
        override = self._overrides.get((table_name, field_name))
        if override is not None:
            return override
        return default_sensitivity(table_name, field_name)

    def tier_for(self, table_name: str, field_name: str) -> DataLevel:
        return self.get(table_name, field_name).sensitivity

    def masking_for(self, table_name: str, field_name: str) -> str:
        return self.get(table_name, field_name).masking_type or MASKING_NONE

    def overrides(self, table_name: str | None = None) -> list[FieldSensitivityConfig]:
        """Overrides ordered by (table, display_order, field)."""
        configs = [c for c in self._overrides.values() if table_name is None or c.table_name == table_name]
        return sorted(configs, key=lambda c: (c.table_name, c.display_order, c.field_name))

    @staticmethod
    def tiers() -> list[dict[str, str]]:
        return [dict(t) for t in SENSITIVITY_TIERS]

    # ---- writes -----------------------------------------------------------------

    def validate(self, config: FieldSensitivityConfig) -> None:
        """Raise SensitivityValidationError if ``config`` violates a system minimum or a field floor."""
        check = validate_sensitivity_tier(config.field_name, config.sensitivity)
        if not check.valid:
            raise SensitivityValidationError(
                check.message or f'Field must be at least "{check.minimum_tier}" sensitivity',
                check.minimum_tier,
            )

        existing = self._overrides.get(config.key)
        floors = (config.min_sensitivity, existing.min_sensitivity if existing is not None else None)
        for floor in floors:
            if floor is not None and not data_level_includes(config.sensitivity, floor):
                raise SensitivityValidationError(
                    f'Field "{config.field_name}" has a minimum sensitivity of "{floor.value}"',
                    floor,
                )

    def set_override(self, config: FieldSensitivityConfig) -> FieldSensitivityConfig:
        self.bulk_update([config])
        return self.get(config.table_name, config.field_name)

    def bulk_update(self, configs: Iterable[FieldSensitivityConfig]) -> int:
        """Validate every config, then apply all of them. Nothing is applied if any is invalid."""
        configs = list(configs)
        with self._lock:
            for config in configs:
                self.validate(config)
            updated = dict(self._overrides)
            for config in configs:
                existing = updated.get(config.key)
                if config.min_sensitivity is None and existing is not None and existing.min_sensitivity is not None:
                    config = replace(config, min_sensitivity=existing.min_sensitivity)
                updated[config.key] = config
            self._overrides = MappingProxyType(updated)
        logger.info("field sensitivity updated count=%s", len(configs))
        return len(configs)

    def remove_override(self, table_name: str, field_name: str) -> bool:
        with self._lock:
            if (table_name, field_name) not in self._overrides:
                return False
            updated = dict(self._overrides)
            del updated[(table_name, field_name)]
            self._overrides = MappingProxyType(updated)
        return True

    def replace_overrides(self, configs: Iterable[FieldSensitivityConfig]) -> None:
        """Swap the whole override snapshot (used on refresh from the data store)."""
        snapshot = MappingProxyType({c.key: _clamp(c) for c in configs})
        with self._lock:
            self._overrides = snapshot

    def refresh_from(self, source: FieldSensitivitySource, table_name: str | None = None) -> int:
        configs = source.fetch_field_sensitivity(table_name)
        if table_name is None:
            self.replace_overrides(configs)
        else:
            with self._lock:
                kept = {k: v for k, v in self._overrides.items() if k[0] != table_name}
                kept.update({c.key: _clamp(c) for c in configs})
                self._overrides = MappingProxyType(kept)
        logger.debug("field sensitivity refreshed table=%s count=%s", table_name or "*", len(configs))
        return len(configs)

