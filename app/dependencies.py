"""
Ledgerline Payroll - FastAPI Dependencies

Request context dependencies. Authentication happens upstream; the
gateway forwards the selected company and acting user as headers.
"""

import uuid
from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_entity_id(
    x_entity_id: Optional[str] = Header(default=None, alias="X-Entity-ID"),
) -> uuid.UUID:
    """
    Get the current company (entity) ID from the X-Entity-ID header.

    Raises:
        HTTPException: 400 if the header is missing or not a UUID
    """
    if not x_entity_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No company selected. Send the X-Entity-ID header.",
        )
    try:
        return uuid.UUID(x_entity_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid X-Entity-ID header: {x_entity_id}",
        )


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> Optional[uuid.UUID]:
    """Acting user, if the gateway forwarded one."""
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid X-User-ID header: {x_user_id}",
        )

