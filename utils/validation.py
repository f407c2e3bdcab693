def normalize_email(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def is_valid_email(email) -> bool:
    if not isinstance(email, str) or len(email) > 255:
        return False
    local, sep, domain = email.partition("@")
    return bool(sep) and bool(local) and "." in domain and " " not in email


def clean_text(value, max_len: int):
    """Trimmed string, None when empty; ValueError when not a string or too long."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("must be a string")
    value = value.strip()
    if len(value) > max_len:
        raise ValueError(f"must be at most {max_len} characters")
    return value or None
