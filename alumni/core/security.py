"""
Password hashing and opaque access tokens
"""
import base64
import hashlib
import hmac
import secrets
import string
import struct
import time

import bcrypt

from .config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # bcrypt only looks at the first 72 bytes
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def generate_token() -> str:
    """Plain-text token handed to the client exactly once"""
    return secrets.token_urlsafe(40)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token_hash(token: str, token_hash: str) -> bool:
    return secrets.compare_digest(hash_token(token), token_hash)


def random_string(length: int = 32) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_two_factor_secret() -> str:
    """16-character base32 secret"""
    return base64.b32encode(secrets.token_bytes(10)).decode("ascii")


def generate_recovery_codes(count: int = 8) -> list[str]:
    return [f"{random_string(5).lower()}-{random_string(5).lower()}" for _ in range(count)]


def totp_code(secret: str, for_time: float = None, step: int = 30, digits: int = 6) -> str:
    """RFC 6238 time-based one-time password"""
    counter = int((for_time if for_time is not None else time.time()) // step)
    key = base64.b32decode(secret.upper())
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    value = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(value % (10 ** digits)).zfill(digits)


def verify_totp(secret: str, code: str, window: int = 1) -> bool:
    now = time.time()
    return any(
        hmac.compare_digest(totp_code(secret, now + drift * 30), code)
        for drift in range(-window, window + 1)
    )
