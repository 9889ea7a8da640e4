"""FastAPI dependencies for authentication, database and storage."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from propertyledger.database import get_db
from propertyledger.models.property import Property
from propertyledger.models.user import User
from propertyledger.services.auth import decode_access_token
from propertyledger.services.photo_service import PhotoService
from propertyledger.services.storage import StorageService, get_storage_service

security = HTTPBearer()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    token = credentials.credentials
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def get_photo_service(
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> PhotoService:
    """Get photo service bound to the shared storage service."""
    return PhotoService(storage)


def get_account_property(db: Session, property_id: int, user: User) -> Property:
    """Get a live property that belongs to the user's account."""
    prop = (
        db.query(Property)
        .filter(
            Property.id == property_id,
            Property.account_id == user.account_id,
            Property.deleted_at.is_(None),
        )
        .first()
    )
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop
