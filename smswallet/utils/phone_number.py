"""Phone number helpers."""


def format_phone_number(phone_number: str) -> str:
    """Normalize a phone number to carry a leading '+'."""
    phone_number = phone_number.strip()
    if not phone_number or phone_number.startswith("+"):
        return phone_number
    return f"+{phone_number}"


def looks_like_phone_number(identifier: str) -> bool:
    """True when ``identifier`` is digits with an optional leading '+'."""
    digits = identifier[1:] if identifier.startswith("+") else identifier
    return len(digits) >= 7 and digits.isdigit()
