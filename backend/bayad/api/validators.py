from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from bayad.domain.models import DISCOUNT_MODES, EVERYONE
from bayad.domain.money import MoneyError, to_decimal
from bayad.services.share import Payee


class ApiValidationError(ValueError):
    """Raised when request payload validation fails."""


def require_object(data: object) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ApiValidationError("Request body must be a JSON object.")
    return data


def parse_name(raw: object, *, field: str = "name") -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ApiValidationError(f"'{field}' must be a non-empty string.")
    return raw.strip()


def parse_price(raw: object, *, field: str = "price") -> Decimal:
    """
    Prices arrive as JSON numbers or strings ("12.50"). Either way they
    become Decimal; negative or non-numeric values are rejected.
    """
    if raw is None or isinstance(raw, (bool, list, dict)):
        raise ApiValidationError(f"'{field}' must be a number >= 0.")
    try:
        value = to_decimal(raw)
    except MoneyError as e:
        raise ApiValidationError(f"'{field}' must be a number >= 0.") from e
    if value < 0:
        raise ApiValidationError(f"'{field}' must be a number >= 0.")
    return value


def parse_person_ids(raw: object, *, field: str = "assigned_person_ids") -> List[str]:
    if not isinstance(raw, list):
        raise ApiValidationError(f"'{field}' must be a list of person ids.")
    ids: List[str] = []
    for pid in raw:
        if not isinstance(pid, str) or not pid.strip():
            raise ApiValidationError(f"Each entry of '{field}' must be a non-empty string.")
        ids.append(pid)
    return ids


def parse_item_update(data: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    if "name" in data:
        changes["name"] = parse_name(data["name"])
    if "price" in data:
        changes["price"] = parse_price(data["price"])
    if "assigned_person_ids" in data:
        changes["assigned_person_ids"] = parse_person_ids(data["assigned_person_ids"])
    if not changes:
        raise ApiValidationError("Provide at least one of 'name', 'price', 'assigned_person_ids'.")
    return changes


def parse_discount(data: Dict[str, Any]) -> Dict[str, Any]:
    mode = data.get("mode", "even")
    if mode not in DISCOUNT_MODES:
        raise ApiValidationError(f"'mode' must be one of: {', '.join(DISCOUNT_MODES)}.")
    target = data.get("target", EVERYONE)
    if not isinstance(target, str) or not target.strip():
        raise ApiValidationError("'target' must be 'everyone' or a person id.")
    return {"mode": mode, "amount": parse_price(data.get("amount"), field="amount"), "target": target}


def parse_payee(raw: object) -> Optional[Payee]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ApiValidationError("'payee' must be an object.")
    try:
        return Payee.from_dict(raw)
    except ValueError as e:
        raise ApiValidationError(str(e)) from e


def parse_title(raw: object) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ApiValidationError("'title' must be a string.")
    return raw.strip() or None
