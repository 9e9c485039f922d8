import re

DEFAULT_COUNTRY_CODE = "998"
MIN_PHONE_DIGITS = 9
MAX_PHONE_DIGITS = 15

_NON_DIGIT_OR_PLUS = re.compile(r"[^\d+]")


def digits_only(value: str | None) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def is_valid_phone(value: str | None) -> bool:
    return MIN_PHONE_DIGITS <= len(digits_only(value)) <= MAX_PHONE_DIGITS


def clean_phone(value: str | None) -> str:
    """Drop everything except digits and a single leading ``+``."""
    raw = (value or "").strip()
    cleaned = _NON_DIGIT_OR_PLUS.sub("", raw)
    if not cleaned:
        return ""
    leading_plus = cleaned.startswith("+")
    digits = cleaned.replace("+", "")
    return f"+{digits}" if leading_plus and digits else digits


def normalize_contact_phone(value: str | None) -> str:
    """Phone from a shared Telegram contact, always ``+digits``."""
    cleaned = clean_phone(value)
    if not cleaned:
        return ""
    return cleaned if cleaned.startswith("+") else f"+{cleaned}"


def international_digits(value: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Digits including the country code (what the SMS gateway expects)."""
    digits = digits_only(value)
    if not digits:
        return ""
    if digits.startswith(country_code):
        return digits
    return country_code + digits.lstrip("0")


def phone_candidates(value: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> list[str]:
    """All stored spellings a submitted phone may match.

    Historical rows hold phones as typed, digits only, with or without ``+``
    and with or without the country code, so lookups match on any of them.
    """
    candidates: list[str] = []

    def add(item: str | None) -> None:
        if item and item not in candidates:
            candidates.append(item)

    raw = (value or "").strip()
    add(raw)
    add(clean_phone(raw))

    digits = digits_only(raw)
    if not digits:
        return candidates
    add(digits)
    add(f"+{digits}")

    full = international_digits(digits, country_code)
    add(full)
    add(f"+{full}")

    local = full[len(country_code):]
    if len(local) >= MIN_PHONE_DIGITS:
        add(local)
    return candidates
