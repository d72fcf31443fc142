"""JWT helpers identifying the calling profile."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from attention_wallet.core.config import get_settings
from attention_wallet.schemas import TokenData

settings = get_settings()
security = HTTPBearer(auto_error=False)


def create_access_token(profile_id: str, role: str = "ward", expires_delta: Optional[timedelta] = None) -> str:
    expire_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": profile_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expire_delta,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="无法验证凭据") from exc

    profile_id = payload.get("sub")
    if not profile_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="无法验证凭据")
    return TokenData(profile_id=profile_id, role=payload.get("role"))


async def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少访问令牌")
    return decode_access_token(credentials.credentials)


async def get_current_profile_id(token: TokenData = Depends(get_current_token)) -> str:
    return token.profile_id


async def require_guardian(token: TokenData = Depends(get_current_token)) -> TokenData:
    if token.role != "guardian":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="只有监护人可以执行此操作")
    return token
