"""User settings — reminder lead time and the monitoring toggle.

Flipping `enabled` registers or stops the Gmail watch synchronously. A
watch failure is logged and does not block the settings write.
"""

import logging

from sqlalchemy.orm import Session

from app import repository
from app.models import User, UserSettings
from app.services import watch_service
from app.services.token_service import get_valid_token

log = logging.getLogger("subscout.settings")


def load_settings(db: Session, user: User) -> UserSettings:
    row = repository.get_or_create_settings(db, user.id)
    db.commit()
    return row


async def update_settings(
    db: Session, user: User, *,
    reminder_days_before: int | None = None, enabled: bool | None = None,
) -> UserSettings:
    row = repository.get_or_create_settings(db, user.id)

    if enabled is not None:
        access_token = await get_valid_token(user, db)
        if access_token:
            try:
                if enabled:
                    await watch_service.enable_watch(user, db, access_token=access_token)
                else:
                    await watch_service.disable_watch(user, db, access_token=access_token)
            except Exception as e:
                db.rollback()
                log.error(f"Failed to {'enable' if enabled else 'disable'} Gmail watch for user {user.id}: {e}")
        else:
            log.warning(f"No valid token for user {user.id}; watch not toggled")
        row = repository.get_or_create_settings(db, user.id)

    repository.update_settings(
        db, row, reminder_days_before=reminder_days_before, enabled=enabled
    )
    db.commit()
    return row
