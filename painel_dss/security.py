import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from . import config
from .database import DocumentStore
from .schemas import AdminLogin

logger = logging.getLogger("painel.security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/admin", auto_error=False)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def is_authorized(credential: AdminLogin, administrators: Iterable[Mapping[str, Any]]) -> bool:
    """Check a credential against the administrator allow-list. Emails compare case-insensitively."""
    email = normalize_email(credential.email)
    for admin in administrators:
        if normalize_email(admin.get("email", "")) != email:
            continue
        return verify_password(credential.password, admin.get("hashed_password", ""))
    return False


def authenticate_admin(store: DocumentStore, credential: AdminLogin) -> bool:
    email = normalize_email(credential.email)
    admins = store.get_documents(config.COL_ADMINISTRATORS, {"email": email})
    granted = is_authorized(credential, admins)
    if not granted:
        logger.warning("Rejected admin login for %s", email)
    return granted


def create_admin(store: DocumentStore, email: str, password: str) -> Dict[str, Any]:
    doc = store.create_document(
        config.COL_ADMINISTRATORS,
        {"email": normalize_email(email), "hashed_password": hash_password(password)},
    )
    logger.info("Administrator %s created", doc["email"])
    return doc


def ensure_bootstrap_admin(store: DocumentStore) -> Optional[Dict[str, Any]]:
    """Seed the configured admin account when the allow-list is empty."""
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        return None
    if store.get_one(config.COL_ADMINISTRATORS, {}):
        return None
    return create_admin(store, config.ADMIN_EMAIL, config.ADMIN_PASSWORD)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_is_admin(token: Optional[str] = Depends(oauth2_scheme)) -> bool:
    """Session privilege: anonymous callers are regular users, a bad token is rejected."""
    if not token:
        return False
    payload = decode_access_token(token)
    return payload.get("role") == "admin"
