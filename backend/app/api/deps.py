"""FastAPI dependency injection — repository, auth and practice-scope guards."""
import os
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from app.db import get_db
from app.services.hr_errors import HrAuthError, HrNotFoundError
from app.services.hr_repository import HrRepository, SqlHrRepository, UserRecord
from app.services.hr_types import PracticeRecord

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

security = HTTPBearer(auto_error=False)


async def get_hr_repository(db: AsyncSession = Depends(get_db)) -> HrRepository:
    return SqlHrRepository(db)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    repo: HrRepository = Depends(get_hr_repository),
) -> UserRecord:
    if not credentials:
        raise HrAuthError("Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if not user_id:
            raise HrAuthError("Invalid token", code="INVALID_TOKEN")
    except JWTError:
        raise HrAuthError("Invalid token", code="INVALID_TOKEN")

    user = await repo.get_user(user_id)
    if not user or not user.is_active:
        raise HrAuthError("User not found or inactive", code="INVALID_TOKEN")
    return user


async def require_practice_access(
    practice_id: str,
    user: UserRecord = Depends(get_current_user),
    repo: HrRepository = Depends(get_hr_repository),
) -> PracticeRecord:
    """
    Resolve the practice in the path and check the caller owns it.

    401: no / invalid token (raised by get_current_user)
    404: practice does not exist
    403: authenticated, but the practice belongs to another account
    """
    practice = await repo.get_practice(practice_id)
    if practice is None:
        raise HrNotFoundError("Practice not found", code="PRACTICE_NOT_FOUND")
    if practice.owner_id != user.id:
        raise HrAuthError("Access to this practice is not permitted", status_code=403)
    return practice
