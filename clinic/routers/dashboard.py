from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import require_back_office

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/", response_model=schemas.DashboardResponse)
def get_dashboard(
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    """Front desk summary for one day (today by default)"""
    day = day or date.today()

    by_status = {}
    outstanding = 0
    for model in models.BOOKING_MODELS.values():
        rows = (
            db.query(model.status, func.count(model.id))
            .filter(model.date == day)
            .group_by(model.status)
            .all()
        )
        for status_value, count in rows:
            key = (models.BookingStatus.parse(status_value) or models.BookingStatus.PENDING).value
            by_status[key] = by_status.get(key, 0) + count

        outstanding += db.query(
            func.coalesce(func.sum(model.price - model.amount_paid), 0)
        ).filter(
            model.status == models.BookingStatus.TREATED.value,
            model.price > model.amount_paid,
        ).scalar()

    pending = db.query(models.OnlineRequest).filter(
        models.OnlineRequest.status == models.BookingStatus.PENDING.value
    ).count()

    patients = db.query(models.User).filter(
        models.User.role == models.UserRole.PATIENT.value
    ).count()

    return schemas.DashboardResponse(
        date=day,
        bookings_by_status=by_status,
        pending_online_requests=pending,
        outstanding_balance=int(outstanding),
        patients=patients,
    )
