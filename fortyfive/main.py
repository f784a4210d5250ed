from fastapi import FastAPI

from fortyfive.core.config import settings
from fortyfive.core.db import Base, engine
from fortyfive.core.logging import setup_logging
from fortyfive.api.v1.health import router as health_router
from fortyfive.api.v1.apple import router as apple_router
from fortyfive.api.v1.body_metrics import router as body_metrics_router
from fortyfive.api.v1.recovery import router as recovery_router
from fortyfive.api.v1.nutrition import router as nutrition_router
from fortyfive.api.v1.profile import router as profile_router
import fortyfive.models  # noqa: F401  registers tables on Base.metadata

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title="FortyFive", version="1.0.0")

if engine:
    Base.metadata.create_all(bind=engine)

app.include_router(health_router, prefix="/v1")
app.include_router(apple_router, prefix="/v1")
app.include_router(body_metrics_router, prefix="/v1")
app.include_router(recovery_router, prefix="/v1")
app.include_router(nutrition_router, prefix="/v1")
app.include_router(profile_router, prefix="/v1")
