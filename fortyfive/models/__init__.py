from fortyfive.models.body_metrics import BodyMetricsEntry
from fortyfive.models.health_sample import HealthSample
from fortyfive.models.nutrition_log import NutritionLog
from fortyfive.models.preference import UserPreference

__all__ = [
    "BodyMetricsEntry",
    "HealthSample",
    "NutritionLog",
    "UserPreference",
]
