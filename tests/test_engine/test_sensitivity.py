from __future__ import annotations

import pytest

from authz_engine.engine.levels import DataLevel
from authz_engine.engine.sensitivity import (
    FieldSensitivityConfig,
    SensitivityRegistry,
    SensitivityValidationError,
    default_sensitivity,
    validate_sensitivity_tier,
)


def test_builtin_defaults_and_prefixes():
    assert default_sensitivity("core_users", "personal_ssn").sensitivity == DataLevel.SENSITIVE
    assert default_sensitivity("core_users", "personal_dob").masking_type == "date"
    assert default_sensitivity("core_users", "personal_address_line3").masking_type == "partial"
    assert default_sensitivity("core_users", "tax_filing_status").sensitivity == DataLevel.SENSITIVE
    assert default_sensitivity("core_users", "pay_overtime_rate").sensitivity == DataLevel.COMPANY


def test_unknown_field_is_basic_unmasked():
    config = default_sensitivity("core_users", "favourite_colour")
    assert config.sensitivity == DataLevel.BASIC
    assert config.masking_type == "none"


def test_system_minimums():
    assert not validate_sensitivity_tier("personal_ssn", "company").valid
    assert validate_sensitivity_tier("personal_ssn", "sensitive").valid
    result = validate_sensitivity_tier("bank_iban", DataLevel.PERSONAL)
    assert not result.valid and result.minimum_tier == DataLevel.SENSITIVE
    assert not validate_sensitivity_tier("pay_bonus", "basic").valid
    assert validate_sensitivity_tier("personal_email", "basic").valid
    assert not validate_sensitivity_tier("personal_email", "ultra").valid


def test_override_layering():
    registry = SensitivityRegistry()
    registry.set_override(FieldSensitivityConfig("core_users", "personal_email", DataLevel.COMPANY, "email"))
    assert registry.tier_for("core_users", "personal_email") == DataLevel.COMPANY
    assert registry.tier_for("other_table", "personal_email") == DataLevel.PERSONAL
    assert registry.remove_override("core_users", "personal_email")
    assert not registry.remove_override("core_users", "personal_email")
    assert registry.tier_for("core_users", "personal_email") == DataLevel.PERSONAL


def test_set_override_rejects_below_system_minimum():
    registry = SensitivityRegistry()
    with pytest.raises(SensitivityValidationError) as exc_info:
        registry.set_override(FieldSensitivityConfig("core_users", "bank_name", DataLevel.BASIC, "full"))
    assert exc_info.value.minimum_tier == DataLevel.SENSITIVE


def test_stored_min_sensitivity_is_enforced_and_preserved():
    registry = SensitivityRegistry(
        [FieldSensitivityConfig("core_users", "notes", DataLevel.COMPANY, "full", min_sensitivity=DataLevel.PERSONAL)]
    )
    with pytest.raises(SensitivityValidationError):
        registry.set_override(FieldSensitivityConfig("core_users", "notes", DataLevel.BASIC, "full"))
    updated = registry.set_override(FieldSensitivityConfig("core_users", "notes", DataLevel.PERSONAL, "partial"))
    assert updated.min_sensitivity == DataLevel.PERSONAL


def test_own_min_sensitivity_is_a_floor_for_writes():
    below_floor = FieldSensitivityConfig(
        "core_users", "notes", DataLevel.BASIC, "full", min_sensitivity=DataLevel.SENSITIVE
    )
    registry = SensitivityRegistry()
    with pytest.raises(SensitivityValidationError) as exc_info:
        registry.set_override(below_floor)
    assert exc_info.value.minimum_tier == DataLevel.SENSITIVE
    assert registry.overrides() == []

    with pytest.raises(SensitivityValidationError):
        registry.bulk_update([FieldSensitivityConfig("core_users", "personal_email", DataLevel.COMPANY, "email"), below_floor])
    assert registry.overrides() == []

    assert SensitivityRegistry([below_floor]).tier_for("core_users", "notes") == DataLevel.SENSITIVE


def test_bulk_update_is_all_or_nothing():
    registry = SensitivityRegistry()
    with pytest.raises(SensitivityValidationError):
        registry.bulk_update(
            [
                FieldSensitivityConfig("core_users", "personal_email", DataLevel.COMPANY, "email"),
                FieldSensitivityConfig("core_users", "tax_id", DataLevel.PERSONAL, "last4"),
            ]
        )
    assert registry.overrides() == []


def test_constructor_clamps_instead_of_rejecting():
    registry = SensitivityRegistry([FieldSensitivityConfig("core_users", "tax_id", DataLevel.BASIC, "last4")])
    assert registry.tier_for("core_users", "tax_id") == DataLevel.SENSITIVE


def test_unknown_tier_and_masking_normalized():
    config = FieldSensitivityConfig("t", "f", "secret-ish", " PARTIAL ")
    assert config.sensitivity == DataLevel.BASIC
    assert config.masking_type == "partial"


class _Source:
    def __init__(self, configs):
        self.configs = configs

    def fetch_field_sensitivity(self, table_name=None):
        return [c for c in self.configs if table_name is None or c.table_name == table_name]


def test_refresh_from_source_replaces_one_table():
    registry = SensitivityRegistry(
        [
            FieldSensitivityConfig("core_users", "nickname", DataLevel.PERSONAL),
            FieldSensitivityConfig("core_user_compensation", "pay_note", DataLevel.COMPANY),
        ]
    )
    source = _Source([FieldSensitivityConfig("core_users", "hobby", DataLevel.PERSONAL, "full")])
    assert registry.refresh_from(source, "core_users") == 1
    keys = [c.key for c in registry.overrides()]
    assert keys == [("core_user_compensation", "pay_note"), ("core_users", "hobby")]


def test_tiers_listing():
    assert [t["value"] for t in SensitivityRegistry.tiers()] == ["basic", "personal", "company", "sensitive"]
