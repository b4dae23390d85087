# Overview: Shared UI credential check (bcrypt). Not a security boundary for the JSON API.

from __future__ import annotations

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..validation import ConflictError, require_text


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def authenticate(name: str, password: str) -> User | None:
    if not name or not password:
        return None
    user = db.session.query(User).filter_by(name=name.strip()).first()
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def create_user(name: str, password: str) -> User:
    name = require_text(name, "name")
    password = require_text(password, "password")
    if db.session.query(User).filter_by(name=name).first() is not None:
        raise ConflictError(f"user {name!r} already exists")
    user = User(name=name, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("User %s created", name)
    return user


def ensure_initial_user(name: str, password: str) -> bool:
    """Create the shared login if it does not exist yet. Returns True when created."""
    if db.session.query(User).filter_by(name=name).first() is not None:
        return False
    create_user(name, password)
    return True
