from fastapi import APIRouter

from fortyfive.core.config import settings
from fortyfive.core.db import engine

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "db": engine is not None,
        "recipe_api": bool(settings.SPOONACULAR_API_KEY),
    }
