"""
Item code generation.

An item code is derived from the item's attributes, not from a sequence:

    <category abbreviation>_<qualifier>_<size>_<gsm>

Parts that are missing are left out. Validation problems that make a code
meaningless (no category, bad GSM) are errors; missing descriptive parts
are warnings, and a code is still produced.
"""
import re
from typing import Optional

MAX_GSM = 1000

_WORD_RE = re.compile(r"[A-Za-z0-9]+")
_PART_RE = re.compile(r"[^A-Za-z0-9.]+")


def category_abbreviation(category_name: Optional[str]) -> str:
    """'Raw Materials' -> 'RM', 'Paper' -> 'PAP'."""
    words = _WORD_RE.findall(category_name or "")
    if not words:
        return ""
    if len(words) == 1:
        return words[0][:3].upper()
    return "".join(w[0] for w in words)[:4].upper()


def _normalize_part(value) -> str:
    if value is None:
        return ""
    return _PART_RE.sub("", str(value)).strip(".").upper()


def parse_gsm(value):
    """Return (gsm_float_or_None, error_or_None)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, None
    try:
        gsm = float(str(value).strip())
    except (TypeError, ValueError):
        return None, "GSM must be a number"
    if gsm <= 0:
        return None, "GSM must be a positive number"
    if gsm > MAX_GSM:
        return None, f"GSM must not exceed {MAX_GSM}"
    return gsm, None


def _format_gsm(gsm: float) -> str:
    return str(int(gsm)) if float(gsm).is_integer() else f"{gsm:g}"


def generate_item_code(category_name, qualifier=None, size_mm=None, gsm=None) -> dict:
    """
    Build an item code and its validation report.

    Returns ``{"success", "item_code", "validation": {"errors", "warnings"}}``;
    ``item_code`` is None whenever ``errors`` is not empty.
    """
    errors = []
    warnings = []

    prefix = category_abbreviation(category_name)
    if not (category_name or "").strip():
        errors.append("Category is required")
    elif not prefix:
        errors.append("Category name must contain letters or digits")

    gsm_value, gsm_error = parse_gsm(gsm)
    if gsm_error:
        errors.append(gsm_error)

    qualifier_part = _normalize_part(qualifier)
    size_part = _normalize_part(size_mm)
    if not qualifier_part:
        warnings.append("Qualifier is missing")
    if not size_part:
        warnings.append("Size is missing")
    if gsm_value is None and not gsm_error:
        warnings.append("GSM is missing")

    if errors:
        return {"success": False, "item_code": None, "validation": {"errors": errors, "warnings": warnings}}

    parts = [prefix, qualifier_part, size_part]
    if gsm_value is not None:
        parts.append(_format_gsm(gsm_value))
    code = "_".join(p for p in parts if p)
    return {"success": True, "item_code": code, "validation": {"errors": errors, "warnings": warnings}}
