from datetime import date as DateType, datetime
from typing import Optional

from fastapi import HTTPException

from fortyfive.clients.spoonacular import SpoonacularClient


def parse_date(date_str: Optional[str]) -> DateType:
    """YYYY-MM-DD, "today" or nothing (today)."""
    if not date_str or date_str == "today":
        return DateType.today()
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format, expected YYYY-MM-DD")


def get_meal_client() -> SpoonacularClient:
    client = SpoonacularClient.from_settings()
    if client is None:
        raise HTTPException(503, "Recipe API not configured (SPOONACULAR_API_KEY missing)")
    return client
