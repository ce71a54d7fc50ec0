from fastapi import Header, HTTPException
from jose import JWTError, jwt

from checkout import config

STAFF_ROLES = ("staff", "admin")


def verify_token(authorization: str = Header(None)):
    """Staff dashboard guard: HS256 bearer token carrying a staff role."""
    if not authorization or not config.JWT_SECRET:
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    if claims.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=401, detail="Staff access required")
    return claims
