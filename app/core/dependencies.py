from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List, Optional
from app.core.container import ServiceContainer
from app.core.security import decode_token, extract_business_unit_id, extract_roles
from app.schemas.auth import CurrentUser
from app.services.marketplace_service import MarketplaceService
from app.services.post_service import PostService

security = HTTPBearer()

EMPLOYEE_ROLES = ["admin", "manager", "employee"]
MANAGER_ROLES = ["admin", "manager"]


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Get current authenticated user from the bearer token"""
    payload = decode_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(
        id=str(payload["sub"]),
        first_name=payload.get("given_name"),
        last_name=payload.get("family_name"),
        roles=extract_roles(payload),
        business_unit_id=extract_business_unit_id(payload),
    )


def require_role(allowed_roles: List[str]):
    """Dependency factory for role-based access control"""
    async def role_checker(current_user: CurrentUser = Depends(get_current_user)):
        if not current_user.roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No role assigned to user"
            )

        normalized_allowed_roles = [role.lower().replace(" ", "_") for role in allowed_roles]
        if not any(role in normalized_allowed_roles for role in current_user.normalized_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required roles: {', '.join(allowed_roles)}"
            )

        return current_user

    return role_checker


async def get_manager_or_above(current_user: CurrentUser = Depends(require_role(MANAGER_ROLES))):
    """Dependency for manager level access and above"""
    return current_user


async def get_employee_or_above(current_user: CurrentUser = Depends(require_role(EMPLOYEE_ROLES))):
    """Dependency for any marketplace participant"""
    return current_user


def business_unit_scope(current_user: CurrentUser) -> Optional[str]:
    """Business unit a user is confined to, or None for admins."""
    if current_user.is_admin:
        return None
    if not current_user.business_unit_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token carries no business unit"
        )
    return current_user.business_unit_id


def resolve_business_unit(explicit: Optional[str], current_user: CurrentUser) -> str:
    scope = business_unit_scope(current_user)
    if explicit and scope and explicit != scope:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied to business unit {explicit}"
        )
    business_unit_id = explicit or current_user.business_unit_id
    if not business_unit_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Business unit ID is required (query parameter or token claim)"
        )
    return business_unit_id


async def get_business_unit_id(
    business_unit_id: Optional[str] = Query(None, description="Defaults to the business unit in the token"),
    current_user: CurrentUser = Depends(get_current_user),
) -> str:
    return resolve_business_unit(business_unit_id, current_user)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_marketplace_service(container: ServiceContainer = Depends(get_container)) -> MarketplaceService:
    return container.marketplace_service


def get_post_service(container: ServiceContainer = Depends(get_container)) -> PostService:
    return container.post_service
