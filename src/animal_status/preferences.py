"""User channel preference resolution."""

import logging

from src.animal_status.models import ChannelPreference, PreferenceChange
from src.animal_status.store import StatusStore

logger = logging.getLogger(__name__)


class PreferenceResolver:
    """Loads channel preferences, creating defaults on first access.

    Defaults are in-app on, email off. Read failures fall back to those
    defaults so alerting degrades instead of going silent.
    """

    def __init__(self, store: StatusStore) -> None:
        self.store = store

    def resolve(self, owner_id: int) -> ChannelPreference:
        """Get a user's preferences, creating the default record if missing."""
        try:
            pref = self.store.get_preference(owner_id)
            if pref is not None:
                return pref

            # Insert-if-absent: a racing first access returns the winner's row.
            pref = self.store.upsert_preference(
                ChannelPreference.default(owner_id), overwrite=False,
            )
            logger.info("Default notification preferences created for user %s", owner_id)
            return pref
        except Exception:
            logger.error(
                "Error resolving notification preferences for user %s; using defaults",
                owner_id,
                exc_info=True,
            )
            return ChannelPreference.default(owner_id)

    def update(
        self,
        owner_id: int,
        in_app_enabled: bool,
        email_enabled: bool,
    ) -> PreferenceChange:
        """Update a user's channel switches.

        Raises:
            ValueError: If either flag is not a bool.
        """
        if not isinstance(in_app_enabled, bool) or not isinstance(email_enabled, bool):
            raise ValueError("in_app_enabled and email_enabled must be boolean values")

        current = self.resolve(owner_id)
        updated = self.store.upsert_preference(
            ChannelPreference(
                owner_id=owner_id,
                in_app_enabled=in_app_enabled,
                email_enabled=email_enabled,
            ),
            overwrite=True,
        )

        change = PreferenceChange(
            preference=updated,
            in_app_changed=current.in_app_enabled != in_app_enabled,
            email_changed=current.email_enabled != email_enabled,
            email_just_enabled=not current.email_enabled and email_enabled,
            email_just_disabled=current.email_enabled and not email_enabled,
        )
        logger.info(
            "Notification preferences updated for user %s: in_app=%s email=%s",
            owner_id, in_app_enabled, email_enabled,
        )
        return change
