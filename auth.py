import logging
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext
from pymongo.database import Database

from database import USERS, serialize, utcnow

logger = logging.getLogger(__name__)

pwd = CryptContext(schemes=["argon2"], deprecated="auto")

PRIVATE_FIELDS = ("password", "verification_token", "verification_token_expires")

# Stand-in identity until real sessions exist
MOCK_USER = {
    "id": "mock-user-id",
    "name": "Mock User",
    "email": "user@example.com",
    "role": "admin",
    "admin_level": "super",
    "permissions": ["all"],
    "status": "active",
}


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd.verify(p, h)


def public_user(user: Optional[dict]) -> Optional[dict]:
    return serialize(user, hidden=PRIVATE_FIELDS)


def authenticate_user(db: Database, email: str, password: str) -> Optional[dict]:
    user = db[USERS].find_one({"email": email.strip().lower(), "status": "active"})
    if not user or not user.get("password") or not verify_password(password, user["password"]):
        return None
    now = utcnow()
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {"last_login": now, "updated_at": now}})
    user["last_login"] = now
    logger.info("User %s logged in", user["_id"])
    return public_user(user)


def check_auth(request: Request) -> Optional[dict]:
    """Any Authorization header is accepted and mapped to the mock admin."""
    if not request.headers.get("authorization"):
        return None
    return dict(MOCK_USER)
