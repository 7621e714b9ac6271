import re
from typing import Dict, Iterable, Mapping

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_price(text: str) -> float:
    price = float(str(text).strip().replace(",", "."))
    if price < 0:
        raise ValueError("price must be >= 0")
    return price


def is_email(value: str) -> bool:
    return bool(EMAIL_RE.match((value or "").strip()))


def required_field_errors(form: Mapping[str, str], fields: Iterable[str]) -> Dict[str, str]:
    """Returns {field: message} for every empty required field."""
    errors: Dict[str, str] = {}
    for f in fields:
        if not str(form.get(f) or "").strip():
            errors[f] = f"{f.capitalize()} is required"
    return errors
