"""
Request helpers: owner resolution and shared service collaborators.

Authentication happens upstream. The gateway forwards the resolved owner id in
the X-Ledger-Owner-Id header and this service treats it as opaque.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status

from ledger.services.event_publisher import EventPublisher

OWNER_ID_HEADER = "X-Ledger-Owner-Id"


def get_owner_id(
    x_ledger_owner_id: Optional[str] = Header(default=None, alias=OWNER_ID_HEADER),
) -> str:
    """
    Dependency resolving the owner of the current request.

    Raises:
        HTTPException: 401 when the gateway did not forward an owner id
    """
    owner_id = (x_ledger_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return owner_id


@lru_cache
def get_publisher() -> EventPublisher:
    """Process-wide event publisher (the Redis client is created lazily)."""
    return EventPublisher()
