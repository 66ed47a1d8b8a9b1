"""
Dependency injection for the application
"""

from typing import Optional

from fastapi import Request, Depends, Header

from domains.pathway.models.records import CurrentUser
from domains.pathway.services.transition_service import PathwayTransitionService
from stores import StaticIdentityProvider


async def get_service_context(request: Request):
    """Get the pathway service context"""
    return request.app.state.pathway_service


async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> CurrentUser:
    """Caller identity as resolved by the gateway"""
    return CurrentUser(id=x_user_id, display_name=x_user_name, role=x_user_role)


async def get_transition_service(
    context=Depends(get_service_context),
    user: CurrentUser = Depends(get_current_user)
) -> PathwayTransitionService:
    """Get a transition service acting for the current user"""
    return PathwayTransitionService(
        context.stores,
        StaticIdentityProvider(user),
        config=context.config.pathway,
        view_cache=context.view_cache
    )
