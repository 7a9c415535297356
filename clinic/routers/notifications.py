from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..notifications import broadcast
from ..security import get_current_user, require_admin

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def _own_notification(db: Session, notification_id: int, user: models.User) -> models.Notification:
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id,
        models.Notification.user_id == user.id,
    ).first()
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("/", response_model=List[schemas.NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    query = db.query(models.Notification).filter(models.Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(models.Notification.read.is_(False))
    return query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit).all()


@router.get("/unread-count", response_model=schemas.UnreadCount)
def unread_count(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    count = db.query(models.Notification).filter(
        models.Notification.user_id == current_user.id,
        models.Notification.read.is_(False),
    ).count()
    return {"unread": count}


@router.post("/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    updated = db.query(models.Notification).filter(
        models.Notification.user_id == current_user.id,
        models.Notification.read.is_(False),
    ).update({models.Notification.read: True}, synchronize_session=False)
    db.commit()
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    notification = _own_notification(db, notification_id, current_user)
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    db.delete(_own_notification(db, notification_id, current_user))
    db.commit()
    return None


@router.post("/broadcast")
def send_broadcast(
    data: schemas.BroadcastCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin)
):
    """Announcement to every active user of a role"""
    sent = broadcast(db, data.role, data.title, data.message)
    db.commit()
    return {"sent": sent}
