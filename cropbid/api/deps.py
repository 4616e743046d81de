# cropbid/api/deps.py
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from cropbid.core.config import settings
from cropbid.core.database import AsyncSessionLocal
from cropbid.core.jwt import Principal, decode_access_token
from cropbid.core.redis import redis_client
from cropbid.services.bidding_service import BiddingService
from cropbid.services.session_store import (
    InMemorySessionStore,
    SessionStore,
    SqlAlchemySessionStore,
)
from cropbid.services.subject_linkage import SqlSubjectDirectory, SubjectLinkage

# Tokens are issued by the identity provider
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Decode the bearer token into the calling principal (no database query)."""
    principal = decode_access_token(token)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def build_session_store() -> SessionStore:
    if settings.STORE_BACKEND == "memory":
        return InMemorySessionStore()
    return SqlAlchemySessionStore(AsyncSessionLocal)


@lru_cache
def get_bidding_service() -> BiddingService:
    """FastAPI Dependency: process-wide bidding service"""
    linkage = SubjectLinkage(SqlSubjectDirectory(AsyncSessionLocal), redis_client)
    return BiddingService(store=build_session_store(), linkage=linkage)
