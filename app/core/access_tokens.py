# app/core/access_tokens.py
import secrets

ACCESS_TOKEN_BYTES = 16


def generate_access_token() -> str:
    """
    Opaque client-form access token: 32 lowercase hex characters.
    Uniqueness is enforced by the unique constraint on client_forms.access_token.
    """
    return secrets.token_hex(ACCESS_TOKEN_BYTES)


def mask_access_token(access_token: str) -> str:
    """Shortened form for log lines."""
    if not access_token:
        return ""
    return f"{access_token[:6]}..."
