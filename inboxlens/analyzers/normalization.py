"""
Declarative normalization of raw model payloads.

Every stage describes its wire payload as a table of FieldSpec entries. The
same engine (normalize_fields) applies that table to whatever the completion
service returned: enums are checked against closed vocabularies, numbers are
clamped, bounded lists are truncated, malformed list items are dropped. Each
repair is reported as a Correction so the analyzer contract can log and count
it. Nothing here raises on bad model output.

The engine is idempotent: feeding its output back in yields the same mapping
and no corrections.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from inboxlens.analyzers.types import Correction, vocabulary

T = TypeVar("T")

_TRUE_STRINGS = frozenset({"true", "yes", "1", "y"})
_FALSE_STRINGS = frozenset({"false", "no", "0", "n", ""})


@dataclass(frozen=True)
class FieldSpec:
    """How one wire field is validated and repaired."""

    name: str
    kind: str  # "text" | "flag" | "number" | "integer" | "choice" | "text_list" | "choice_list" | "object_list"
    default: Any = None
    choices: frozenset[str] | None = None
    aliases: Mapping[str, str] | None = None
    min_value: float | None = None
    max_value: float | None = None
    max_items: int | None = None
    required: bool = False
    item_fields: tuple[FieldSpec, ...] = ()
    drop_item_unless: tuple[str, ...] = ()  # item keys that must be valid/non-empty


@dataclass
class Normalized(Generic[T]):
    """Domain object plus the cleaned wire mapping it was built from."""

    data: T
    corrections: list[Correction] = field(default_factory=list)
    wire: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Spec constructors
# ---------------------------------------------------------------------------


def _choices(values: type[Enum] | Iterable[str]) -> frozenset[str]:
    if isinstance(values, type) and issubclass(values, Enum):
        return vocabulary(values)
    return frozenset(values)


def text(name: str, default: str | None = None, *, required: bool = False) -> FieldSpec:
    return FieldSpec(name, "text", default=default, required=required)


def flag(name: str, default: bool = False, *, required: bool = False) -> FieldSpec:
    return FieldSpec(name, "flag", default=default, required=required)


def number(
    name: str,
    default: float | None = None,
    *,
    lo: float | None = 0.0,
    hi: float | None = 1.0,
    required: bool = False,
) -> FieldSpec:
    return FieldSpec(name, "number", default=default, min_value=lo, max_value=hi, required=required)


def integer(
    name: str,
    default: int | None = None,
    *,
    lo: int | None = None,
    hi: int | None = None,
    required: bool = False,
) -> FieldSpec:
    return FieldSpec(name, "integer", default=default, min_value=lo, max_value=hi, required=required)


def choice(
    name: str,
    values: type[Enum] | Iterable[str],
    default: str | None = None,
    *,
    aliases: Mapping[str, str] | None = None,
    required: bool = False,
) -> FieldSpec:
    return FieldSpec(
        name,
        "choice",
        default=default,
        choices=_choices(values),
        aliases=aliases,
        required=required,
    )


def text_list(name: str, *, max_items: int | None = None) -> FieldSpec:
    return FieldSpec(name, "text_list", default=(), max_items=max_items)


def choice_list(
    name: str,
    values: type[Enum] | Iterable[str],
    *,
    max_items: int | None = None,
) -> FieldSpec:
    return FieldSpec(name, "choice_list", default=(), choices=_choices(values), max_items=max_items)


def object_list(
    name: str,
    item_fields: Iterable[FieldSpec],
    *,
    max_items: int | None = None,
    drop_item_unless: Iterable[str] = (),
) -> FieldSpec:
    return FieldSpec(
        name,
        "object_list",
        default=(),
        item_fields=tuple(item_fields),
        max_items=max_items,
        drop_item_unless=tuple(drop_item_unless),
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def normalize_fields(
    raw: Mapping[str, Any] | None,
    specs: Iterable[FieldSpec],
    path: str = "",
) -> tuple[dict[str, Any], list[Correction]]:
    """
    Apply a FieldSpec table to a raw payload.

    Args:
        raw: Payload as returned by the completion service (may be anything)
        specs: Field table for this payload
        path: Prefix for correction field names (used for nested items)

    Returns:
        (clean mapping containing exactly the declared fields, corrections)

    Side Effects:
        None - pure function
    """
    source: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    clean: dict[str, Any] = {}
    corrections: list[Correction] = []

    for spec in specs:
        label = f"{path}{spec.name}"
        present = spec.name in source and source[spec.name] is not None
        value = source.get(spec.name)
        clean[spec.name] = _coerce(spec, value, present, label, corrections)

    return clean, corrections


def _missing(spec: FieldSpec, label: str, corrections: list[Correction]) -> Any:
    default = list(spec.default) if isinstance(spec.default, tuple) else spec.default
    if spec.required and spec.default is not None:
        corrections.append(Correction(label, "defaulted", None, default))
    return default


def _coerce(
    spec: FieldSpec,
    value: Any,
    present: bool,
    label: str,
    corrections: list[Correction],
) -> Any:
    if spec.kind == "text":
        return _coerce_text(spec, value, present, label, corrections)
    if spec.kind == "flag":
        return _coerce_flag(spec, value, present, label, corrections)
    if spec.kind in ("number", "integer"):
        return _coerce_number(spec, value, present, label, corrections)
    if spec.kind == "choice":
        return _coerce_choice(spec, value, present, label, corrections)
    if spec.kind == "text_list":
        return _coerce_text_list(spec, value, present, label, corrections)
    if spec.kind == "choice_list":
        return _coerce_choice_list(spec, value, present, label, corrections)
    if spec.kind == "object_list":
        return _coerce_object_list(spec, value, present, label, corrections)
    raise ValueError(f"Unknown field kind: {spec.kind}")


def _coerce_text(spec, value, present, label, corrections):
    if not present:
        return _missing(spec, label, corrections)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
        if spec.default is not None and value != spec.default:
            corrections.append(Correction(label, "defaulted", value, spec.default))
        return spec.default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        coerced = str(value)
        corrections.append(Correction(label, "coerced", value, coerced))
        return coerced
    corrections.append(Correction(label, "coerced", value, spec.default))
    return spec.default


def _coerce_flag(spec, value, present, label, corrections):
    if not present:
        return _missing(spec, label, corrections)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        coerced = value.strip().lower() in _TRUE_STRINGS
    elif isinstance(value, (int, float)):
        coerced = bool(value)
    else:
        coerced = bool(spec.default)
    corrections.append(Correction(label, "coerced", value, coerced))
    return coerced


def _coerce_number(spec, value, present, label, corrections):
    if not present:
        return _missing(spec, label, corrections)

    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        corrections.append(Correction(label, "coerced", value, spec.default))
        return spec.default

    number_value: float
    if isinstance(value, str):
        try:
            number_value = float(value.strip())
        except ValueError:
            corrections.append(Correction(label, "coerced", value, spec.default))
            return spec.default
    else:
        number_value = float(value)

    if math.isnan(number_value) or math.isinf(number_value):
        corrections.append(Correction(label, "coerced", value, spec.default))
        return spec.default

    clamped = number_value
    if spec.min_value is not None and clamped < spec.min_value:
        clamped = float(spec.min_value)
    if spec.max_value is not None and clamped > spec.max_value:
        clamped = float(spec.max_value)

    result: float | int = clamped
    if spec.kind == "integer":
        result = int(round(clamped))

    if clamped != number_value:
        corrections.append(Correction(label, "clamped", value, result))
    elif isinstance(value, str) or (spec.kind == "integer" and result != value):
        corrections.append(Correction(label, "coerced", value, result))
    return result


def _match_choice(spec: FieldSpec, value: str) -> tuple[str | None, str | None]:
    """Return (matched value, correction kind) for a candidate enum string."""
    choices = spec.choices or frozenset()
    if value in choices:
        return value, None
    folded = value.strip().lower().replace("-", "_").replace(" ", "_")
    if folded in choices:
        return folded, "coerced"
    if spec.aliases and folded in spec.aliases:
        return spec.aliases[folded], "aliased"
    return None, "out_of_vocabulary"


def _coerce_choice(spec, value, present, label, corrections):
    if not present:
        return _missing(spec, label, corrections)
    if not isinstance(value, str):
        corrections.append(Correction(label, "out_of_vocabulary", value, spec.default))
        return spec.default
    matched, kind = _match_choice(spec, value)
    if matched is None:
        corrections.append(Correction(label, "out_of_vocabulary", value, spec.default))
        return spec.default
    if kind is not None:
        corrections.append(Correction(label, kind, value, matched))
    return matched


def _as_list(spec, value, present, label, corrections) -> list[Any] | None:
    if not present:
        return None
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, str) and spec.kind in ("text_list", "choice_list"):
        corrections.append(Correction(label, "coerced", value, [value]))
        return [value]
    corrections.append(Correction(label, "coerced", value, []))
    return []


def _truncate(spec, items: list[Any], label, corrections) -> list[Any]:
    if spec.max_items is not None and len(items) > spec.max_items:
        corrections.append(Correction(label, "truncated", len(items), spec.max_items))
        return items[: spec.max_items]
    return items


def _coerce_text_list(spec, value, present, label, corrections):
    items = _as_list(spec, value, present, label, corrections)
    if items is None:
        return []
    cleaned = [item.strip() for item in items if isinstance(item, str) and item.strip()]
    if len(cleaned) != len(items):
        corrections.append(Correction(label, "dropped_items", len(items) - len(cleaned), None))
    return _truncate(spec, cleaned, label, corrections)


def _coerce_choice_list(spec, value, present, label, corrections):
    items = _as_list(spec, value, present, label, corrections)
    if items is None:
        return []

    kept: list[str] = []
    rejected: list[Any] = []
    for item in items:
        matched = None
        if isinstance(item, str):
            matched, _ = _match_choice(spec, item)
        if matched is None:
            rejected.append(item)
        elif matched not in kept:
            kept.append(matched)

    if rejected:
        corrections.append(Correction(label, "out_of_vocabulary", rejected, None))
    return _truncate(spec, kept, label, corrections)


def _coerce_object_list(spec, value, present, label, corrections):
    items = _as_list(spec, value, present, label, corrections)
    if items is None:
        return []

    kept: list[dict[str, Any]] = []
    dropped = 0
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            dropped += 1
            continue
        item_label = f"{label}[{index}]."
        item_clean, item_corrections = normalize_fields(item, spec.item_fields, item_label)
        if _item_invalid(spec, item_clean, item_corrections, item_label):
            dropped += 1
            continue
        kept.append(item_clean)
        corrections.extend(item_corrections)

    if dropped:
        corrections.append(Correction(label, "dropped_items", dropped, None))
    return _truncate(spec, kept, label, corrections)


def _item_invalid(
    spec: FieldSpec,
    item_clean: Mapping[str, Any],
    item_corrections: list[Correction],
    item_label: str,
) -> bool:
    for key in spec.drop_item_unless:
        if item_clean.get(key) in (None, "", []):
            return True
        if any(
            c.field == f"{item_label}{key}" and c.kind == "out_of_vocabulary"
            for c in item_corrections
        ):
            return True
    return False


# ---------------------------------------------------------------------------
# Cross-field repairs
# ---------------------------------------------------------------------------


def clamp_unit(value: Any, default: float = 0.0) -> float:
    """Clamp to [0, 1]; non-numeric becomes default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if math.isnan(value):
        return default
    return max(0.0, min(1.0, float(value)))


def repair_contradiction(
    clean: dict[str, Any],
    flag_name: str,
    list_name: str,
    corrections: list[Correction],
) -> bool:
    """
    Fix "has_X=true with X=[]".

    Returns:
        True if a repair was applied
    """
    if clean.get(flag_name) and not clean.get(list_name):
        clean[flag_name] = False
        corrections.append(Correction(flag_name, "contradiction", True, False))
        return True
    return False


def mean_confidence(items: Iterable[Mapping[str, Any]], key: str = "confidence") -> float:
    """Mean of child-item confidences, 0 when there are none."""
    values = [clamp_unit(item.get(key), 0.0) for item in items]
    if not values:
        return 0.0
    return sum(values) / len(values)


def synthesize_confidence(
    clean: dict[str, Any],
    items_name: str,
    corrections: list[Correction],
    key: str = "confidence",
) -> None:
    """Fill a missing overall confidence with the mean of child items."""
    if clean.get(key) is None:
        synthesized = mean_confidence(clean.get(items_name) or [])
        clean[key] = synthesized
        corrections.append(Correction(key, "synthesized", None, synthesized))
