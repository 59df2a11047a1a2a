"""Password hashing with passlib's bcrypt scheme."""

import logging

from passlib.context import CryptContext

from ticketing.core.config import settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.password_bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its hash; malformed hashes never verify."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning("Password verification failed: %s", e)
        return False
