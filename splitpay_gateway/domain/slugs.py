"""Payment link slug candidates"""

import secrets
import string

_ALPHABET = string.ascii_lowercase + string.digits


def generate_slug_candidate(prefix: str = "pay", length: int = 8) -> str:
    """Random base36 token, e.g. pay-k3j9x0qa"""
    token = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}-{token}"
