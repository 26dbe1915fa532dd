"""Short URL-safe identifiers for shared sessions."""

import secrets
import string

SHARE_ID_ALPHABET = string.ascii_letters + string.digits


def generate_share_id(length: int = 8) -> str:
    """Generate a random alphanumeric share id.

    Args:
        length: Number of characters

    Returns:
        Random id such as "aZ3kP9qx"
    """
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(SHARE_ID_ALPHABET) for _ in range(length))
