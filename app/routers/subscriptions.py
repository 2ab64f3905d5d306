"""Subscriptions API — list, edit, delete detected subscriptions.

Records are only ever created by ingestion. Edits here keep the calendar
reminder in sync; see services/subscription_service.py.
"""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from .. import repository
from ..database import get_db
from ..dependencies import require_user
from ..models import User
from ..schemas.settings import SubscriptionOut, SubscriptionUpdate
from ..services import subscription_service

router = APIRouter(tags=["subscriptions"])


def _load(db: Session, user: User, subscription_id: int):
    sub = repository.get_subscription(db, user.id, subscription_id)
    if not sub:
        raise HTTPException(404, "Subscription not found")
    return sub


@router.get("/api/subscriptions", response_model=list[SubscriptionOut])
async def list_subscriptions(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return [SubscriptionOut.model_validate(s) for s in repository.list_subscriptions(db, user.id)]


@router.patch("/api/subscriptions/{subscription_id}")
async def update_subscription(
    subscription_id: int,
    body: SubscriptionUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    sub = _load(db, user, subscription_id)
    await subscription_service.update_subscription(
        db, user, sub, end_date=body.endDate, status=body.status
    )
    logger.info(f"Subscription {subscription_id} updated by user {user.id}")
    return {"status": "ok"}


@router.delete("/api/subscriptions/{subscription_id}")
async def delete_subscription(
    subscription_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    sub = _load(db, user, subscription_id)
    await subscription_service.delete_subscription(db, user, sub)
    return {"status": "ok"}
