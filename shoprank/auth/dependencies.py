from __future__ import annotations

from fastapi import HTTPException, Request


def _session_user(request: Request) -> dict:
    user = request.session.get("user")
    if not user or not user.get("user_id"):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_user(request: Request) -> dict:
    """Logged-in session user, or 401."""
    return _session_user(request)


def require_admin(request: Request) -> dict:
    """Logged-in admin, 401 without a session and 403 for other roles."""
    user = _session_user(request)
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
