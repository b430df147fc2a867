from fastapi import Depends, Header, HTTPException, status

# Identity is owned by the upstream gateway; it forwards the authenticated user id.


def get_acting_user_id(x_user_id: str | None = Header(default=None, max_length=64)) -> str | None:
    cleaned = (x_user_id or "").strip()
    return cleaned or None


def require_acting_user_id(user_id: str | None = Depends(get_acting_user_id)) -> str:
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_id
