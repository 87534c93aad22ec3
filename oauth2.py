from datetime import datetime, timezone, timedelta
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, Request, status
from database import get_db
import schemas, models
from sqlalchemy.orm import Session
from fastapi.security import OAuth2PasswordBearer
from config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl='/api/auth/login', auto_error=False)

SECRET_KEY = settings.secret_key
ALGORITHM = settings.algorithm
EXPIRATION_TIME_IN_MINUTES = settings.access_token_expire_minutes
TOKEN_COOKIE = "access_token"

def create_access_token(data: dict):
    encode_data = data.copy()
    issued_at = datetime.now(timezone.utc)
    expiration_time = issued_at + timedelta(minutes=EXPIRATION_TIME_IN_MINUTES)
    encode_data.update({"iat": issued_at, "exp" : expiration_time})
    token = jwt.encode(encode_data, key= SECRET_KEY, algorithm= ALGORITHM)
    return token

def verify_access_token(token: str, credentials_exception):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        id = payload.get("user_id")
        role = payload.get("role")
        if not id:
            raise credentials_exception
        token = schemas.TokenData(id=id, role=role)
    except JWTError:
        raise credentials_exception
    return token

def extract_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    """Bearer header first, then the ``token`` query parameter, then the session cookie."""
    return bearer or request.query_params.get("token") or request.cookies.get(TOKEN_COOKIE)

def get_current_user(request: Request, bearer: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    token = extract_token(request, bearer)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required", headers={"WWW-Authenticate": "Bearer"})
    credentials_exception = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                                          detail="Invalid or expired token", headers={"WWW-Authenticate": "Bearer"})
    token = verify_access_token(token, credentials_exception)
    user = db.query(models.User).filter(models.User.id == token.id).first()
    if not user:
        raise credentials_exception
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")
    return user

def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""
    def role_checker(current_user: models.User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user
    return role_checker
