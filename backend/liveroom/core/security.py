"""
Caller identity.

OTP/phone verification happens upstream; the gateway forwards the verified
identity as X-User-Id / X-Display-Name / X-Phone / X-Email / X-Role headers,
plus X-Unregistered for phone-verified callers without an account.
"""

from typing import Mapping, Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status

from liveroom.models.audience import Identity

HOST_ROLE = "host"


def identity_from_headers(headers: Mapping[str, str]) -> Optional[Identity]:
    user_id = (headers.get("x-user-id") or "").strip()
    if not user_id:
        return None
    return Identity(
        user_id=user_id,
        display_name=(headers.get("x-display-name") or "").strip(),
        phone=(headers.get("x-phone") or "").strip(),
        email=(headers.get("x-email") or "").strip(),
        role=(headers.get("x-role") or "").strip() or "audience",
        unregistered=(headers.get("x-unregistered") or "").strip().lower() in ("1", "true", "yes"),
    )


async def get_current_identity(request: Request) -> Identity:
    identity = identity_from_headers(request.headers)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unable to resolve user session. Please login again.",
        )
    return identity


async def require_host(identity: Identity = Depends(get_current_identity)) -> Identity:
    if identity.role != HOST_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the room host can change room settings.",
        )
    return identity


def websocket_identity(websocket: WebSocket) -> Optional[Identity]:
    return identity_from_headers(websocket.headers)
