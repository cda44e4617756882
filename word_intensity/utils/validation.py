from typing import Any, List, Mapping

from ..constants import DEMOGRAPHIC_AGE_MAX, DEMOGRAPHIC_AGE_MIN, DEMOGRAPHIC_FIELDS


def validate_age(s: Any) -> bool:
    s = str(s or "").strip()
    if not s.isdigit():
        return False
    return DEMOGRAPHIC_AGE_MIN <= int(s) <= DEMOGRAPHIC_AGE_MAX


def validate_demographics(fields: Mapping[str, Any]) -> List[str]:
    """Return user-facing problems with the demographic form; empty when valid."""
    missing = [
        label for key, label in DEMOGRAPHIC_FIELDS.items() if not str(fields.get(key) or "").strip()
    ]
    problems: List[str] = []
    if missing:
        problems.append(f"Please fill in: {', '.join(missing)}.")
    if "Age" not in missing and not validate_age(fields.get("age")):
        problems.append(f"Age must be a whole number between {DEMOGRAPHIC_AGE_MIN} and {DEMOGRAPHIC_AGE_MAX}.")
    return problems
