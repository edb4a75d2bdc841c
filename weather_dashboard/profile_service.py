"""
Profile resolution on top of the store: guest fallback, first-login creation, name sync.
"""
import logging

from weather_dashboard.profile_store import ProfileStore, ProfileStoreError
from weather_dashboard.profiles import Profile, guest_profile, new_user_profile

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, store: ProfileStore) -> None:
        self.store = store

    def default(self) -> Profile:
        return guest_profile()

    def get_for_user(self, user_id: str) -> Profile:
        """Stored profile; the guest profile for anonymous users, unknown users, or when the DB is down."""
        if not user_id:
            return guest_profile()
        try:
            profile = self.store.load(user_id)
        except ProfileStoreError:
            return guest_profile()
        return profile if profile is not None else guest_profile()

    def base_for_user(self, user_id: str, display_name: str | None = None) -> Profile:
        """
        Starting point for an edit by a signed-in user: stored profile, else a fresh one named after
        the identity provider's display name (the user id only when that is unknown).
        """
        profile = self.store.load(user_id)
        if profile is None:
            profile = new_user_profile(user_id, display_name or user_id)
        return profile

    def update_for_user(self, user_id: str, profile: Profile) -> bool:
        """Persist profile for user_id. The guest profile cannot be updated (returns False)."""
        if not user_id:
            return False
        self.store.save(profile.with_changes(user_id=user_id))
        return True

    def ensure_login_profile(self, user_id: str, display_name: str) -> Profile:
        """
        Called on login: create the profile on first sight (guest preferences), or update the stored
        name when the identity provider's differs. Database failures are logged, never raised.
        """
        try:
            stored = self.store.load(user_id)
            if stored is None:
                profile = new_user_profile(user_id, display_name)
                self.store.save(profile)
                logger.info("Created profile for new user %r", user_id)
                return profile
            if stored.name != display_name:
                profile = stored.with_changes(name=display_name, is_authenticated=True)
                self.store.save(profile)
                return profile
            return stored
        except ProfileStoreError:
            logger.warning("Profile store unavailable during login of %r; continuing", user_id)
            return new_user_profile(user_id, display_name)
