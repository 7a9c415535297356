from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import get_password_hash, require_admin, require_back_office
from ..telegram_service import telegram_notifier

router = APIRouter(prefix="/api", tags=["Users"])


@router.get("/dentists", response_model=List[schemas.DentistResponse])
def list_dentists(db: Session = Depends(get_db)):
    """Active dentists that can be booked"""
    return db.query(models.User).filter(
        models.User.role == models.UserRole.DENTIST.value,
        models.User.is_active.is_(True),
    ).order_by(models.User.first_name, models.User.last_name).all()


@router.get("/admin/users", response_model=List[schemas.UserResponse])
def list_users(
    role: Optional[models.UserRole] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role.value)
    if search:
        needle = f"%{search.strip()}%"
        query = query.filter(
            models.User.first_name.ilike(needle)
            | models.User.last_name.ilike(needle)
            | models.User.email.ilike(needle)
        )
    return query.order_by(models.User.first_name, models.User.last_name).all()


@router.post("/admin/users", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: schemas.StaffCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin)
):
    """Create an account of any role (staff, dentist, admin or patient)"""
    if db.query(models.User).filter(models.User.email == user_data.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A user with this email already exists"
        )

    user = models.User(
        email=user_data.email,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone=user_data.phone,
        address=user_data.address,
        birthdate=user_data.birthdate,
        specialization=user_data.specialization,
        password_hash=get_password_hash(user_data.password),
        role=user_data.role.value,
        is_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/admin/users/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    return _get_user(db, user_id)


@router.patch("/admin/users/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: int,
    update: schemas.UserAdminUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    """Change role, activation or specialization"""
    user = _get_user(db, user_id)

    if user.id == admin.id and (update.role not in (None, models.UserRole.ADMIN) or update.is_active is False):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot demote or deactivate your own account"
        )

    if update.role is not None:
        user.role = update.role.value
    if update.is_active is not None:
        user.is_active = update.is_active
    if update.specialization is not None:
        user.specialization = update.specialization

    db.commit()
    db.refresh(user)
    return user


@router.delete("/admin/users/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    user = _get_user(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    db.delete(user)
    db.commit()
    return None


@router.post("/admin/test-telegram")
async def test_telegram(_: models.User = Depends(require_admin)):
    """Send a test message to the staff Telegram chats"""
    if not telegram_notifier.admin_chat_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Telegram chat IDs are not configured. Set TELEGRAM_ADMIN_CHAT_IDS in .env"
        )

    if not await telegram_notifier.send_test_message():
        raise HTTPException(status_code=502, detail="Telegram message could not be delivered")

    return {"message": "Test message sent"}
