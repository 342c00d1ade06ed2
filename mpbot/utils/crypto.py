# mpbot/utils/crypto.py
import hmac
import secrets


def generate_license_key():
    # human-friendly but random
    return secrets.token_urlsafe(16)


def tokens_match(expected: str, supplied: str | None) -> bool:
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode(), supplied.encode())
