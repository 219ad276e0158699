"""
Auth boundary: login and registration.

The core only needs the resulting identity (id + login) for ownership
resolution. Passwords are kept as bcrypt hashes.
"""
import logging
from typing import Optional
import bcrypt
from sqlalchemy.orm import Session
from cortapau import config
from cortapau.errors import AuthenticationError, ValidationError
from cortapau.models.domain import User
from cortapau.models.enums import Role

logger = logging.getLogger(__name__)

# Never produced by bcrypt, so no password can match it
UNUSABLE_PASSWORD = "!"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash; unusable or malformed hashes never match."""
    if not hashed_password or hashed_password == UNUSABLE_PASSWORD:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as exc:
        logger.error("Password verification error: %s", exc)
        return False


def authenticate(db: Session, login: str, password: str) -> User:
    """Return the user for valid credentials, AuthenticationError otherwise."""
    user = db.query(User).filter(User.login == login).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("Rejected login attempt for %s", login)
        raise AuthenticationError("Invalid credentials")
    return user


def register(db: Session, name: Optional[str], email: Optional[str], password: Optional[str]) -> User:
    """Create a citizen account. E-mail doubles as login."""
    if not name or not email or not password:
        raise ValidationError("Name, e-mail and password are required.")

    existing = db.query(User).filter(User.login == email).first()
    if existing:
        raise ValidationError("E-mail already registered.")

    user = User(name=name, login=email, password_hash=hash_password(password), role=Role.USER)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def get_or_create_user(
    db: Session,
    login: str,
    name: str,
    password: Optional[str] = None,
    role: Role = Role.USER
) -> User:
    """Upsert by login; used for the demo author and the debug seed. No password means no login."""
    user = db.query(User).filter(User.login == login).first()
    if user:
        return user
    password_hash = hash_password(password) if password else UNUSABLE_PASSWORD
    user = User(name=name, login=login, password_hash=password_hash, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
