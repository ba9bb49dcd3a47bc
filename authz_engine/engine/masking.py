"""
Value and record masking.

A value is shown as-is when its field tier is ``basic``, when the user views
their own ``personal`` data, or when the user's resolved tier is at least the
field's tier. Otherwise the field's masking type decides the output.

``mask_value`` is pure and total: every masking type has an output for every
input, and empty/None values always mask to ``""``. Unknown masking types
fall back to the full mask.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any, Callable, Iterable, Mapping, Sequence

from .context import PermissionCache, PermissionCheckContext
from .levels import DataLevel, data_level_includes
from .resolver import check_permission, get_max_data_level, is_self_access
from .sensitivity import MASKING_NONE, SensitivityRegistry

BULLET = "•"
MASKED_VALUE = BULLET * 8
MASKED_CURRENCY = "$" + BULLET * 5
MASKED_DATE = "••/••/••••"

DEFAULT_TABLE = "core_users"

META_FIELDS = frozenset({"meta_id", "meta_status", "meta_created_at", "meta_updated_at"})

ALWAYS_VISIBLE_FIELDS: tuple[str, ...] = (
    "personal_first_name",
    "personal_preferred_name",
    "personal_last_name",
    "personal_avatar_url",
    "company_email",
    "company_title",
    "company_avatar_url",
)

NEVER_SERIALIZED_FIELDS: tuple[str, ...] = (
    "auth_password_hash",
    "auth_mfa_secret",
)

_NON_DIGIT_RE = re.compile(r"\D")
_YEAR_RE = re.compile(r"\d{4}")


class MaskingType(StrEnum):
    FULL = "full"
    PARTIAL = "partial"
    LAST4 = "last4"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    CURRENCY = "currency"


# ---- Value masking -------------------------------------------------------------------


def _mask_partial(value: str) -> str:
    if len(value) <= 4:
        return MASKED_VALUE
    return value[:2] + BULLET * 4 + value[-2:]


def _mask_last4(value: str) -> str:
    if len(value) <= 4:
        return BULLET * 4 + value
    return BULLET * 6 + value[-4:]


def _mask_email(value: str) -> str:
    at = value.find("@")
    if at <= 0:
        return MASKED_VALUE
    local, domain = value[:at], value[at:]
    if len(local) <= 2:
        return local[0] + BULLET * 4 + domain
    return local[0] + BULLET * 4 + local[-1] + domain


def _mask_phone(value: str) -> str:
    digits = _NON_DIGIT_RE.sub("", value)
    if len(digits) < 4:
        return MASKED_VALUE
    last4 = digits[-4:]
    if len(digits) == 10:
        return f"(•••) •••-{last4}"
    if len(digits) == 11:
        return f"+• (•••) •••-{last4}"
    return f"•••-{last4}"


def _mask_date(value: str) -> str:
    match = _YEAR_RE.search(value)
    if match:
        return f"••/••/{match.group(0)}"
    return MASKED_DATE


_MASKERS: dict[str, Callable[[str], str]] = {
    MaskingType.FULL: lambda _v: MASKED_VALUE,
    MaskingType.PARTIAL: _mask_partial,
    MaskingType.LAST4: _mask_last4,
    MaskingType.EMAIL: _mask_email,
    MaskingType.PHONE: _mask_phone,
    MaskingType.DATE: _mask_date,
    MaskingType.CURRENCY: lambda _v: MASKED_CURRENCY,
}


def mask_value(value: Any, masking_type: MaskingType | str | None) -> str:
    """
    Mask ``value`` with ``masking_type``.

        >>> mask_value("jane.doe@example.com", "email")
        'j••••e@example.com'
        >>> mask_value("4111111111111111", "last4")
        '••••••1111'
    """

    if value is None:
        return ""
    text = str(value)
    if not text:
        return ""
    masker = _MASKERS.get(str(masking_type or "").lower(), _MASKERS[MaskingType.FULL])
    return masker(text)


def can_view_tier(field_tier: DataLevel, user_tier: DataLevel | None, self_access: bool = False) -> bool:
    if field_tier == DataLevel.BASIC:
        return True
    if self_access and field_tier == DataLevel.PERSONAL:
        return True
    return user_tier is not None and data_level_includes(user_tier, field_tier)


def apply_mask(
    value: Any,
    field_tier: DataLevel,
    user_tier: DataLevel | None,
    masking_type: str | None,
    self_access: bool = False,
) -> Any:
    """Return ``value`` unchanged when visible, otherwise its masked form."""
    if can_view_tier(field_tier, user_tier, self_access):
        return value
    return mask_value(value, masking_type)


# ---- Record masking ------------------------------------------------------------------


def mask_user_data(
    record: Mapping[str, Any],
    allowed_level: DataLevel | None,
    is_self: bool,
    registry: SensitivityRegistry,
    table_name: str = DEFAULT_TABLE,
    always_show_fields: Iterable[str] = (),
    omit_fields: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Mask one record for a viewer whose resolved tier is ``allowed_level``.

    Omitted fields are never serialized. A ``sensitive`` field with no
    structural mask is dropped so its presence is not revealed either.
    """

    always_show = frozenset(always_show_fields)
    omit = frozenset(omit_fields)
    result: dict[str, Any] = {}

    for field_name, value in record.items():
        if field_name in omit:
            continue
        if field_name in META_FIELDS or field_name in always_show:
            result[field_name] = value
            continue

        config = registry.get(table_name, field_name)
        if can_view_tier(config.sensitivity, allowed_level, is_self):
            result[field_name] = value
            continue

        if config.masking_type == MASKING_NONE and config.sensitivity == DataLevel.SENSITIVE:
            continue
        result[field_name] = mask_value(value, config.masking_type)

    return result


def mask_users_data(
    records: Iterable[Mapping[str, Any]],
    cache: PermissionCache,
    get_target_context: Callable[[Mapping[str, Any]], PermissionCheckContext],
    registry: SensitivityRegistry,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
    always_show_fields: Iterable[str] = ALWAYS_VISIBLE_FIELDS,
    omit_fields: Iterable[str] = NEVER_SERIALIZED_FIELDS,
) -> list[dict[str, Any]]:
    """Mask a list of records, resolving the viewer's tier per target record."""
    always_show = tuple(always_show_fields)
    omit = tuple(omit_fields)
    masked: list[dict[str, Any]] = []
    for record in records:
        context = get_target_context(record)
        level = get_max_data_level(cache, resource, "view", context) or DataLevel.BASIC
        masked.append(
            mask_user_data(
                record,
                allowed_level=level,
                is_self=is_self_access(cache, context.target_user_id),
                registry=registry,
                table_name=table_name,
                always_show_fields=always_show,
                omit_fields=omit,
            )
        )
    return masked


# ---- Field-level checks --------------------------------------------------------------


def _with_target(context: PermissionCheckContext | None, target_user_id: str | None) -> PermissionCheckContext:
    if context is None:
        return PermissionCheckContext(target_user_id=target_user_id)
    if target_user_id is not None and context.target_user_id != target_user_id:
        return PermissionCheckContext(
            target_user_id=target_user_id,
            target_department_id=context.target_department_id,
            target_lob_id=context.target_lob_id,
            target_division_id=context.target_division_id,
            target_location_id=context.target_location_id,
            target_tags=context.target_tags,
        )
    return context


def get_allowed_fields(
    cache: PermissionCache,
    target_user_id: str | None,
    fields: Sequence[str],
    registry: SensitivityRegistry,
    context: PermissionCheckContext | None = None,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
) -> list[str]:
    """Fields the user may see unmasked for the target, in input order."""
    ctx = _with_target(context, target_user_id)
    max_level = get_max_data_level(cache, resource, "view", ctx) or DataLevel.BASIC
    is_self = is_self_access(cache, ctx.target_user_id)
    return [f for f in fields if can_view_tier(registry.tier_for(table_name, f), max_level, is_self)]


def get_editable_fields(
    cache: PermissionCache,
    target_user_id: str | None,
    fields: Sequence[str],
    registry: SensitivityRegistry,
    context: PermissionCheckContext | None = None,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
) -> list[str]:
    """
    Fields the user may edit for the target.

    Unlike viewing there is no self exception: editing your own personal data
    needs an explicit edit grant.
    """

    ctx = _with_target(context, target_user_id)
    max_level = get_max_data_level(cache, resource, "edit", ctx)
    if max_level is None:
        return []
    return [f for f in fields if data_level_includes(max_level, registry.tier_for(table_name, f))]


def can_view_field(
    cache: PermissionCache,
    field_name: str,
    registry: SensitivityRegistry,
    context: PermissionCheckContext | None = None,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
) -> bool:
    tier = registry.tier_for(table_name, field_name)
    if tier == DataLevel.BASIC:
        return True
    if context is not None and tier == DataLevel.PERSONAL and is_self_access(cache, context.target_user_id):
        return True
    return check_permission(cache, f"{resource}.view.{tier.value}", context).allowed


def can_edit_field(
    cache: PermissionCache,
    field_name: str,
    registry: SensitivityRegistry,
    context: PermissionCheckContext | None = None,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
) -> bool:
    tier = registry.tier_for(table_name, field_name)
    return check_permission(cache, f"{resource}.edit.{tier.value}", context).allowed


def mask_field_value(
    cache: PermissionCache,
    field_name: str,
    value: Any,
    registry: SensitivityRegistry,
    context: PermissionCheckContext | None = None,
    table_name: str = DEFAULT_TABLE,
    resource: str = "users",
) -> Any:
    """Mask a single value for the viewer, using the field's configured masking type."""
    if can_view_field(cache, field_name, registry, context, table_name, resource):
        return value
    return mask_value(value, registry.masking_for(table_name, field_name))


# ---- Compensation & banking ----------------------------------------------------------


def _mask_by_prefix(data: Mapping[str, Any], prefixes: tuple[str, ...]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for field_name, value in data.items():
        if field_name.startswith(("meta_", "ref_")):
            result[field_name] = value
        elif field_name.startswith(prefixes):
            result[field_name] = MASKED_VALUE
        else:
            result[field_name] = value
    return result


def mask_compensation_data(data: Mapping[str, Any], can_view: bool) -> dict[str, Any]:
    if can_view:
        return dict(data)
    return _mask_by_prefix(data, ("pay_", "config_"))


def mask_banking_data(data: Mapping[str, Any], can_view: bool) -> dict[str, Any]:
    """Banking rows; account and routing numbers stay partially masked even for viewers."""
    if can_view:
        result = dict(data)
        if "bank_account_number" in result:
            result["bank_account_number"] = mask_value(result["bank_account_number"], MaskingType.LAST4)
        if "bank_routing_number" in result:
            result["bank_routing_number"] = mask_value(result["bank_routing_number"], MaskingType.PARTIAL)
        return result
    return _mask_by_prefix(data, ("bank_", "config_"))
