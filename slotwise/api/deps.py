from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.core.db import get_session
from slotwise.core.security import decode_access_token
from slotwise.models.business import Business
from slotwise.services.payment_gateway import PaymentGateway, get_payment_gateway

security = HTTPBearer(auto_error=False)

__all__ = ["get_session", "get_current_business", "get_gateway"]


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


async def get_current_business(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Business:
    """Business admin identified by a bearer token whose subject is the business id."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    business_id = decode_access_token(credentials.credentials)
    if not business_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        bid = int(business_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    business = await session.get(Business, bid)
    if not business:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Business not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return business
