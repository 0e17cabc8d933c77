from datetime import datetime, timedelta, timezone
from typing import Optional, List, Any, Dict
from jose import JWTError, jwt
from app.core.config import settings


def _verification_key() -> str:
    # RS256 tokens from the identity provider are verified with its public key
    if settings.JWT_PUBLIC_KEY:
        return settings.JWT_PUBLIC_KEY
    return settings.SECRET_KEY


def decode_token(token: str) -> Optional[dict]:
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
        return payload
    except JWTError:
        return None


def create_access_token(
    subject: str,
    roles: List[str],
    business_unit_id: Optional[str] = None,
    given_name: Optional[str] = None,
    family_name: Optional[str] = None,
    expires_delta: timedelta = None,
) -> str:
    """Issue a token shaped like the identity provider's. Used by local tooling and tests."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=30)

    to_encode: Dict[str, Any] = {
        "exp": expire,
        "sub": str(subject),
        "realm_access": {"roles": roles},
    }
    if business_unit_id:
        to_encode["business_unit_id"] = business_unit_id
    if given_name:
        to_encode["given_name"] = given_name
    if family_name:
        to_encode["family_name"] = family_name
    if settings.JWT_AUDIENCE:
        to_encode["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def extract_roles(payload: dict) -> List[str]:
    realm_access = payload.get("realm_access") or {}
    roles = realm_access.get("roles") or payload.get("roles") or []
    return [str(role) for role in roles]


def extract_business_unit_id(payload: dict) -> Optional[str]:
    for claim in ("business_unit_id", "businessUnitId"):
        value = payload.get(claim)
        if value:
            return str(value)
    business_units = payload.get("business_units")
    if isinstance(business_units, list) and business_units:
        return str(business_units[0])
    return None
