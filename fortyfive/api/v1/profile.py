from datetime import date as DateType
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from fortyfive.core import store
from fortyfive.core.db import get_db
from fortyfive.core.schemas import UserProfile

router = APIRouter(prefix="/users/{user_id}/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    sex: Optional[str] = None
    birth_date: Optional[DateType] = None
    height_cm: Optional[float] = None
    goal: Optional[str] = None
    activity_level: Optional[str] = None
    diet: Optional[str] = None
    intolerances: Optional[str] = None
    excluded_ingredients: Optional[list[str]] = None


@router.get("", response_model=UserProfile)
def get_profile(user_id: str, db: Session = Depends(get_db)):
    return store.load_profile(db, user_id)


@router.put("", response_model=UserProfile)
def update_profile(user_id: str, payload: ProfileUpdate, db: Session = Depends(get_db)):
    """Partial update: only the fields present in the body change."""
    current = store.load_profile(db, user_id)
    profile = current.model_copy(update=payload.model_dump(exclude_unset=True))
    store.save_profile(db, profile)
    db.commit()
    return profile
