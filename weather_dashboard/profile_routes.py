"""
GET/PUT/POST /api/profile. Signed-in users get their stored profile; everyone else the guest profile.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from weather_dashboard.deps import Context, CurrentSession, get_current_profile
from weather_dashboard.profile_store import ProfileStoreError
from weather_dashboard.profiles import Profile
from weather_dashboard.schemas import ProfileUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/profile")
def get_profile(profile: Annotated[Profile, Depends(get_current_profile)]):
    return profile.to_api()


@router.api_route("/api/profile", methods=["PUT", "POST"])
def update_profile(body: ProfileUpdate, ctx: Context, session: CurrentSession):
    """
    Apply a partial edit. Persisted for signed-in users only; a guest gets the edited guest profile back
    without anything being stored.
    """
    changes = body.changes()
    if session is None:
        return ctx.profiles.default().with_changes(**changes).to_api()

    try:
        updated = ctx.profiles.base_for_user(session.user_id, session.display_name).with_changes(**changes)
        ctx.profiles.update_for_user(session.user_id, updated)
    except ProfileStoreError:
        raise HTTPException(status_code=502, detail="Failed to save profile")
    return updated.to_api()
