"""Value types passed between the health source, the store and the calculators."""
from __future__ import annotations

import uuid
from datetime import date as DateType, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fortyfive.core.units import round_half_up

# (timestamp, value in canonical units)
Sample = tuple[datetime, float]


class HealthKind(str, Enum):
    """Canonical measurement kinds stored by the health source."""

    WEIGHT = "weight"                      # kg
    BODY_FAT = "body_fat"                  # %
    LEAN_BODY_MASS = "lean_body_mass"      # kg
    BMI = "bmi"
    WAIST = "waist_circumference"          # cm
    HEIGHT = "height"                      # cm
    BASAL_ENERGY = "basal_energy"          # kcal
    ACTIVE_ENERGY = "active_energy"        # kcal
    SLEEP = "sleep"                        # hours asleep
    HRV = "hrv"                            # ms (SDNN)
    RESTING_HEART_RATE = "resting_heart_rate"  # bpm


class BodyMetrics(BaseModel):
    """
    One body-composition snapshot for a user and calendar day.

    Weight is the only required measurement; everything else is either
    reported by a scale / Apple Health or derived from weight.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    timestamp: datetime
    weight: float
    body_fat: float = 0.0
    skeletal_muscle: float = 0.0
    bmi: float = 0.0
    bmr: int = 0
    height: float | None = None
    lean_body_mass: float | None = None
    waist_circumference: float | None = None
    source: str = "manual"

    @field_validator("weight")
    @classmethod
    def weight_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("weight must be greater than 0")
        return v

    @property
    def day(self) -> DateType:
        return self.timestamp.date()

    @property
    def calculated_lean_body_mass(self) -> float:
        if self.lean_body_mass is not None and self.lean_body_mass > 0:
            return self.lean_body_mass
        return self.weight - (self.weight * self.body_fat / 100)


class RecoveryMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: DateType
    sleep_hours: float
    hrv: float
    resting_hr: float
    # fields that fell back to a population default because no samples existed
    defaulted: list[str] = Field(default_factory=list)


class Macros(BaseModel):
    model_config = ConfigDict(frozen=True)

    protein: float
    carbs: float
    fats: float

    @property
    def total_calories(self) -> int:
        """4-4-9 rule."""
        return round_half_up(self.protein * 4 + self.carbs * 4 + self.fats * 9)

    @property
    def protein_percent(self) -> float:
        total = self.total_calories
        if total == 0:
            return 0.0
        return self.protein * 4 / total * 100

    @property
    def carbs_percent(self) -> float:
        total = self.total_calories
        if total == 0:
            return 0.0
        return self.carbs * 4 / total * 100

    @property
    def fats_percent(self) -> float:
        total = self.total_calories
        if total == 0:
            return 0.0
        return self.fats * 9 / total * 100


class NutritionTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    daily_calories: int
    macros: Macros
    bmr: int = 0
    is_workout_day: bool = False
    created_at: datetime
    valid_until: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        """A target must be recalculated once ``valid_until`` has passed."""
        return (now or datetime.now()) < self.valid_until

    @property
    def calorie_adjustment(self) -> int:
        """Surplus (+) or deficit (-) relative to BMR."""
        return self.daily_calories - self.bmr


class PlannedExercise(BaseModel):
    name: str
    sets: int
    reps: int | None = None
    weight_kg: float | None = None


class WorkoutPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    workout_type: str = "A"
    exercises: list[PlannedExercise] = Field(default_factory=list)
    notes: str | None = None
    cancelled: bool = False


class RecoveryInsights(BaseModel):
    overall_status: str
    sleep_status: str
    hrv_status: str
    recommendations: list[str]


class RecoveryReport(BaseModel):
    """Everything the recovery screen needs for one user and day."""

    user_id: str
    date: DateType
    recovery_score: float
    metrics: RecoveryMetrics | None
    insights: RecoveryInsights
    recommendation: str
    should_warn: bool
    warning_message: str
    avg_weight_kg: float | None = None
    avg_hrv_ms: float | None = None
    active_calories_kcal: float = 0.0


class UserProfile(BaseModel):
    """Slowly-changing user facts, persisted as key-value preferences."""

    user_id: str
    sex: str | None = None
    birth_date: DateType | None = None
    height_cm: float | None = None
    goal: str = "maintenance"
    activity_level: str = "moderate"
    # passed through to the recipe API
    diet: str | None = None
    intolerances: str | None = None
    excluded_ingredients: list[str] = Field(default_factory=list)


class MealEntry(BaseModel):
    """One eaten meal, already scaled to the servings eaten."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    meal_id: str | None = None
    meal_name: str
    calories: int
    macros: Macros
    timestamp: datetime
    # breakfast, lunch, dinner, snack
    meal_type: str = "snack"
    servings: float = 1.0


class DailyLog(BaseModel):
    """Meals eaten on one day, measured against that day's nutrition target."""

    user_id: str
    date: DateType
    meals: list[MealEntry] = Field(default_factory=list)
    target_calories: int
    target_macros: Macros
    workout_completed: bool = False
    notes: str | None = None

    @property
    def total_calories(self) -> int:
        return sum(m.calories for m in self.meals)

    @property
    def total_macros(self) -> Macros:
        return Macros(
            protein=sum(m.macros.protein for m in self.meals),
            carbs=sum(m.macros.carbs for m in self.meals),
            fats=sum(m.macros.fats for m in self.meals),
        )

    @property
    def remaining_calories(self) -> int:
        return self.target_calories - self.total_calories

    @staticmethod
    def _progress(eaten: float, target: float) -> float:
        if target == 0:
            return 0.0
        return eaten / target * 100

    @property
    def calorie_progress(self) -> float:
        return self._progress(self.total_calories, self.target_calories)

    @property
    def protein_progress(self) -> float:
        return self._progress(self.total_macros.protein, self.target_macros.protein)

    @property
    def carbs_progress(self) -> float:
        return self._progress(self.total_macros.carbs, self.target_macros.carbs)

    @property
    def fats_progress(self) -> float:
        return self._progress(self.total_macros.fats, self.target_macros.fats)

    @property
    def target_met(self) -> bool:
        """Within 5% of the calorie target either way."""
        total = self.total_calories
        return self.target_calories * 0.95 <= total <= self.target_calories * 1.05

    def meal_count(self, meal_type: str) -> int:
        return sum(1 for m in self.meals if m.meal_type == meal_type)
