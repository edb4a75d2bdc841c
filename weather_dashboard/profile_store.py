"""
Profile persistence (user_profiles table). load / save (upsert) / delete keyed by user id.
Database errors are raised as ProfileStoreError; callers decide how to degrade.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from weather_dashboard.models import UserProfileRow
from weather_dashboard.profiles import Profile

logger = logging.getLogger(__name__)


class ProfileStoreError(Exception):
    """The profile database could not be read or written."""


class ProfileStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def load(self, user_id: str) -> Profile | None:
        """Stored profile for user_id, or None if the user has none."""
        try:
            with self._session_factory() as db:
                row = db.get(UserProfileRow, user_id)
                if row is None:
                    return None
                data = dict(row.profile_data or {})
        except SQLAlchemyError as e:
            logger.error("Failed to load profile for user %r: %s", user_id, e)
            raise ProfileStoreError(str(e)) from e
        logger.debug("Loaded profile for user %r", user_id)
        return Profile.from_document(user_id, data)

    def save(self, profile: Profile) -> None:
        """Insert or replace the stored document for profile.user_id."""
        if profile.is_guest:
            raise ValueError("The guest profile is never persisted")
        try:
            with self._session_factory() as db:
                row = db.get(UserProfileRow, profile.user_id)
                if row is None:
                    db.add(UserProfileRow(user_id=profile.user_id, profile_data=profile.to_document()))
                else:
                    row.profile_data = profile.to_document()
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save profile for user %r: %s", profile.user_id, e)
            raise ProfileStoreError(str(e)) from e
        logger.info("Saved profile for user %r", profile.user_id)

    def delete(self, user_id: str) -> bool:
        """Remove the stored profile. Returns False if there was none."""
        try:
            with self._session_factory() as db:
                row = db.get(UserProfileRow, user_id)
                if row is None:
                    return False
                db.delete(row)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to delete profile for user %r: %s", user_id, e)
            raise ProfileStoreError(str(e)) from e
        logger.info("Deleted profile for user %r", user_id)
        return True
