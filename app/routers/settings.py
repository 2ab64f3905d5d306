"""Settings API — reminder lead time and monitoring toggle."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_user
from ..models import User
from ..schemas.settings import SettingsOut, SettingsUpdate
from ..services import settings_service

router = APIRouter(tags=["settings"])


@router.get("/api/settings", response_model=SettingsOut)
async def get_settings(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return SettingsOut.model_validate(settings_service.load_settings(db, user))


@router.put("/api/settings", response_model=SettingsOut)
async def put_settings(
    body: SettingsUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    row = await settings_service.update_settings(
        db, user,
        reminder_days_before=body.reminderDaysBefore,
        enabled=body.enabled,
    )
    return SettingsOut.model_validate(row)
