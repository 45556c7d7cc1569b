import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Tuple

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import crud, models
from .config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from .database import get_db

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Not authenticated",
    headers={"WWW-Authenticate": "Bearer"},
)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(username: str) -> Tuple[str, str, datetime]:
    """Return (token, jti, expires_at) for a freshly signed JWT."""
    jti = uuid.uuid4().hex
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    token = jwt.encode({"sub": username, "jti": jti, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)
    return token, jti, expire


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        raise CREDENTIALS_EXCEPTION
    if not payload.get("sub") or not payload.get("jti"):
        raise CREDENTIALS_EXCEPTION
    return payload


def authenticate_user(db: Session, username: str, password: str):
    user = crud.get_user_by_username(db, username)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def sign_in(db: Session, user: models.User) -> str:
    """Issue a token and record the session that keeps it valid."""
    crud.purge_expired_sessions(db, user.id, datetime.now(timezone.utc))
    token, jti, expires_at = create_access_token(user.username)
    crud.create_auth_session(db, jti=jti, user_id=user.id, expires_at=expires_at)
    logger.info("User %s signed in", user.username)
    return token


def sign_out(db: Session, token: str) -> None:
    payload = decode_access_token(token)
    if not crud.delete_auth_session(db, payload["jti"]):
        raise CREDENTIALS_EXCEPTION
    logger.info("User %s signed out", payload["sub"])


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> models.User:
    """Resolve the bearer token to a user; the session row must still exist."""
    payload = decode_access_token(token)
    record = crud.get_auth_session(db, payload["jti"])
    if record is None or record.user.username != payload["sub"]:
        raise CREDENTIALS_EXCEPTION
    return record.user
