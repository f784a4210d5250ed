"""
Tests for persistence, the health source boundary and the sync/planner flows.
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from fortyfive.core import store
from fortyfive.core.errors import ErrorKind
from fortyfive.core.health_source import HealthSource
from fortyfive.core.planner import build_nutrition_target, build_recovery_report
from fortyfive.core.nutrition import build_meal_entry
from fortyfive.core.schemas import BodyMetrics, HealthKind, Macros, UserProfile
from fortyfive.core.sync import fetch_recovery_metrics, fetch_yearly_average_bmr, sync_body_metrics

NOW = datetime(2024, 6, 1, 12, 0)


def _bm(user_id, ts, weight=80.0, body_fat=0.0, bmr=0):
    return BodyMetrics(user_id=user_id, timestamp=ts, weight=weight, body_fat=body_fat, bmr=bmr)


# ----- Body metrics -----

def test_upsert_replaces_same_day(db):
    """Test a second reading for the same day replaces the first instead of appending."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 80.0, body_fat=18))
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 9), 79.5, body_fat=17.5))
    db.commit()

    assert store.list_body_metric_dates(db, "u1") == [date(2024, 6, 1)]
    assert store.get_body_metrics_for_date(db, "u1", date(2024, 6, 1)).weight == 79.5


def test_upsert_keeps_more_complete_reading(db):
    """Test a sparser reading does not overwrite a more complete one."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 80.0, body_fat=18, bmr=1800))
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 9), 79.0))
    db.commit()

    kept = store.get_body_metrics_for_date(db, "u1", date(2024, 6, 1))
    assert kept.weight == 80.0
    assert kept.bmr == 1800


def test_body_metrics_are_scoped_per_user(db):
    """Test one user's snapshots are invisible to another."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7)))
    db.commit()

    assert store.get_latest_body_metrics(db, "u2") is None
    assert store.list_body_metric_dates(db, "u2") == []


def test_range_latest_and_average(db):
    """Test range queries are inclusive and ordered oldest first."""
    for day, weight in [(1, 80.0), (2, 81.0), (3, 82.0), (5, 83.0)]:
        store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, day, 7), weight))
    db.commit()

    in_range = store.get_body_metrics_range(db, "u1", date(2024, 6, 2), date(2024, 6, 3))
    assert [m.weight for m in in_range] == [81.0, 82.0]
    assert store.get_latest_body_metrics(db, "u1").weight == 83.0
    assert store.get_latest_body_metrics(db, "u1", date(2024, 6, 4)).weight == 82.0
    assert store.average_weight(db, "u1", date(2024, 6, 1), date(2024, 6, 3)) == 81.0
    assert store.average_weight(db, "u1", date(2024, 7, 1), date(2024, 7, 3)) is None


# ----- Preferences -----

def test_preferences_roundtrip(db):
    """Test get/set/delete of a preference keyed by user and key."""
    assert store.get_preference(db, "u1", "units", "metric") == "metric"
    store.set_preference(db, "u1", "units", "imperial")
    db.commit()
    store.set_preference(db, "u1", "units", "metric")
    db.commit()

    assert store.get_preference(db, "u1", "units") == "metric"
    assert store.get_preference(db, "u2", "units") is None
    assert store.delete_preference(db, "u1", "units")
    db.commit()
    assert not store.delete_preference(db, "u1", "units")


def test_profile_and_target_persistence(db):
    """Test profile fields and the nutrition target survive a save/load."""
    store.save_profile(
        db,
        UserProfile(user_id="u1", sex="male", birth_date=date(1990, 6, 2), height_cm=180, goal="fat_loss"),
    )
    db.commit()

    profile = store.load_profile(db, "u1")
    assert profile.sex == "male"
    assert profile.birth_date == date(1990, 6, 2)
    assert profile.goal == "fat_loss"
    assert profile.activity_level == "moderate"

    assert store.needs_target_recalculation(db, "u1", NOW)
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 70.0, bmr=1600))
    db.commit()
    planned = build_nutrition_target(db, "u1", activity_level="moderate", now=NOW)
    db.commit()

    loaded = store.load_nutrition_target(db, "u1")
    assert loaded == planned.target
    assert loaded.daily_calories == 2080
    assert not store.needs_target_recalculation(db, "u1", NOW + timedelta(hours=1))
    assert store.needs_target_recalculation(db, "u1", NOW + timedelta(days=1))


# ----- Health source -----

def test_health_source_range_and_unknown_kind(db, add_samples):
    """Test fetch returns in-range samples and an empty list for unknown kinds."""
    add_samples("u1", HealthKind.HRV, [
        (datetime(2024, 5, 31, 3), 40.0),
        (datetime(2024, 6, 1, 3), 50.0),
    ])
    source = HealthSource(db)

    result = source.fetch("u1", HealthKind.HRV, datetime(2024, 6, 1), datetime(2024, 6, 2))
    assert result.ok
    assert result.value == [(datetime(2024, 6, 1, 3), 50.0)]

    unknown = source.fetch("u1", "blood_glucose", datetime(2024, 6, 1), datetime(2024, 6, 2))
    assert unknown.ok
    assert unknown.value == []


def test_health_source_turns_database_errors_into_results(db, monkeypatch):
    """Test a failing query yields SOURCE_UNAVAILABLE instead of raising."""

    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "query", broken_query)
    source = HealthSource(db)

    result = source.fetch("u1", HealthKind.HRV, datetime(2024, 6, 1), datetime(2024, 6, 2))
    assert not result.ok
    assert result.error == ErrorKind.SOURCE_UNAVAILABLE
    assert result.unwrap_or([]) == []

    assert fetch_recovery_metrics(source, "u1", date(2024, 6, 1)) is None


# ----- Sync / planner -----

def test_sync_builds_daily_metrics_with_yearly_bmr(db, add_samples):
    """Test sync turns raw samples into one snapshot per day carrying the yearly BMR."""
    add_samples("u1", HealthKind.WEIGHT, [
        (datetime(2024, 5, 30, 7), 80.4),
        (datetime(2024, 5, 31, 7), 80.0),
        (datetime(2024, 5, 31, 19), 80.6),
    ])
    add_samples("u1", HealthKind.BODY_FAT, [(datetime(2024, 5, 31, 7), 20.0)])
    add_samples("u1", HealthKind.HEIGHT, [(datetime(2024, 1, 1, 9), 1.8)])
    add_samples("u1", HealthKind.BASAL_ENERGY, [
        (datetime(2024, 5, 30, 8), 800.0),
        (datetime(2024, 5, 30, 20), 900.0),
        (datetime(2024, 5, 31, 9), 1900.0),
    ])

    result = sync_body_metrics(db, "u1", datetime(2024, 5, 1), NOW)
    db.commit()

    assert result.days == 2
    assert result.bmr == 1800
    assert store.list_body_metric_dates(db, "u1") == [date(2024, 5, 30), date(2024, 5, 31)]

    day = store.get_body_metrics_for_date(db, "u1", date(2024, 5, 31))
    assert day.weight == 80.6
    assert day.body_fat == 20.0
    assert day.height == 180.0
    assert day.bmr == 1800


def test_sync_twice_is_stable(db, add_samples):
    """Test re-running sync over the same window leaves one row per day."""
    add_samples("u1", HealthKind.WEIGHT, [(datetime(2024, 5, 31, 7), 80.0)])
    sync_body_metrics(db, "u1", datetime(2024, 5, 1), NOW)
    db.commit()
    sync_body_metrics(db, "u1", datetime(2024, 5, 1), NOW)
    db.commit()

    assert store.list_body_metric_dates(db, "u1") == [date(2024, 5, 31)]


def test_yearly_bmr_uses_profile_fallback(db):
    """Test no basal-energy samples falls back to Harris-Benedict from the profile."""
    store.save_profile(db, UserProfile(user_id="u1", sex="male", birth_date=date(1994, 1, 1), height_cm=180))
    db.commit()

    assert fetch_yearly_average_bmr(db, "u1", NOW, weight_kg=80) == 1854
    assert fetch_yearly_average_bmr(db, "u2", NOW, weight_kg=80) == 1200


def test_recovery_report_from_samples(db, add_samples):
    """Test the report scores the day's samples against the weekly averages."""
    add_samples("u1", HealthKind.SLEEP, [(datetime(2024, 6, 1, 2), 3.0), (datetime(2024, 6, 1, 6), 2.5)])
    add_samples("u1", HealthKind.HRV, [(datetime(2024, 6, 1, 4), 25.0)])
    add_samples("u1", HealthKind.RESTING_HEART_RATE, [(datetime(2024, 6, 1, 7), 82.0)])

    report = build_recovery_report(db, "u1", date(2024, 6, 1))

    assert report.metrics.sleep_hours == 5.5
    assert report.recovery_score == pytest.approx(54.0)
    assert report.insights.overall_status == "Moderate"
    assert report.avg_hrv_ms == 25.0
    assert report.avg_weight_kg is None
    assert not report.should_warn


def test_recovery_report_without_samples_uses_defaults(db):
    """Test a day with no samples scores on the population defaults."""
    report = build_recovery_report(db, "u1", date(2024, 6, 1))

    assert report.metrics.defaulted == ["sleep_hours", "hrv", "resting_hr"]
    # 7 h -> 85, 35 ms -> 60, 67 bpm -> 70, no weight -> 100
    assert report.recovery_score == pytest.approx(0.4 * 85 + 0.4 * (60 * 0.7 + 70 * 0.3) + 0.2 * 100)


def test_nutrition_target_without_metrics(db):
    """Test no body metrics means no target."""
    assert build_nutrition_target(db, "nobody", now=NOW) is None


def test_nutrition_target_clamps_below_floor(db):
    """Test a target under the calorie floor is clamped and flagged."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 45.0, bmr=900))
    db.commit()

    planned = build_nutrition_target(db, "u1", goal="fat_loss", activity_level="sedentary", now=NOW)

    # 900 x 1.2 - 400 = 680 kcal
    assert not planned.valid
    assert planned.clamped
    assert planned.target.daily_calories == 1200


def test_nutrition_target_with_recovery_adjustment(db, add_samples):
    """Test a poorly recovered day trims the stored target."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 70.0, bmr=1600))
    add_samples("u1", HealthKind.SLEEP, [(datetime(2024, 6, 1, 2), 5.5)])
    add_samples("u1", HealthKind.HRV, [(datetime(2024, 6, 1, 4), 25.0)])
    add_samples("u1", HealthKind.RESTING_HEART_RATE, [(datetime(2024, 6, 1, 7), 82.0)])

    planned = build_nutrition_target(db, "u1", goal="fat_loss", activity_level="moderate", use_recovery=True, now=NOW)

    # score 54 -> calories x 0.95
    assert planned.recovery_score == pytest.approx(54.0)
    assert planned.target.daily_calories == 1976
    assert planned.target.macros.carbs == 127


def test_clamped_target_never_stores_negative_grams(db):
    """Test a heavy user on a tiny calorie budget gets re-split, non-negative macros."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 90.0, bmr=900))
    db.commit()

    planned = build_nutrition_target(
        db, "u1", goal="fat_loss", activity_level="sedentary", is_workout_day=True, now=NOW
    )
    macros = planned.target.macros

    # 900 x 1.2 - 400 = 680 kcal, but 2.4 g/kg protein alone is 864 kcal
    assert planned.clamped
    assert planned.issues == [ErrorKind.VALIDATION_FAILURE]
    assert planned.target.daily_calories == 1200
    assert macros.protein == 216
    assert macros.carbs == 64
    assert macros.fats == 12
    assert store.load_nutrition_target(db, "u1").macros.fats >= 0


def test_nutrition_target_flags_estimated_bmr(db):
    """Test metrics without a BMR fall back to an estimate and say so."""
    store.upsert_body_metrics(db, "u1", _bm("u1", datetime(2024, 6, 1, 7), 80.0))
    db.commit()

    planned = build_nutrition_target(db, "u1", activity_level="sedentary", now=NOW)

    # no basal energy samples and no profile height: last-resort 1200 kcal
    assert planned.issues == [ErrorKind.MISSING_DATA]
    assert planned.target.bmr == 1200
    assert planned.target.daily_calories == 1440


def test_recovery_report_includes_active_calories(db, add_samples):
    """Test the report totals the day's active energy."""
    add_samples("u1", HealthKind.ACTIVE_ENERGY, [
        (datetime(2024, 5, 31, 18), 999.0),
        (datetime(2024, 6, 1, 9), 200.0),
        (datetime(2024, 6, 1, 18), 350.0),
    ])

    report = build_recovery_report(db, "u1", date(2024, 6, 1))

    assert report.active_calories_kcal == 550.0


# ----- Daily nutrition log -----

def _entry(ts, calories, protein=30.0, carbs=40.0, fats=10.0, meal_type="lunch", servings=1.0):
    return build_meal_entry(
        "Chicken Bowl", calories, Macros(protein=protein, carbs=carbs, fats=fats), ts,
        meal_type=meal_type, servings=servings,
    )


def _with_target(db, user_id="u1"):
    store.upsert_body_metrics(db, user_id, _bm(user_id, datetime(2024, 6, 1, 7), 70.0, bmr=1600))
    build_nutrition_target(db, user_id, goal="fat_loss", activity_level="moderate", now=NOW)
    db.commit()


def test_log_meal_needs_a_target(db):
    """Test a day's log cannot be opened before a target exists."""
    assert store.log_meal(db, "u1", _entry(NOW, 500)) is None
    assert store.get_daily_log(db, "u1", NOW.date()) is None


def test_log_meal_accumulates_against_target(db):
    """Test meals add up and progress is measured against the copied target."""
    _with_target(db)

    store.log_meal(db, "u1", _entry(datetime(2024, 6, 1, 8), 600, meal_type="breakfast"))
    store.log_meal(db, "u1", _entry(datetime(2024, 6, 1, 13), 700, servings=2.0))
    db.commit()

    log = store.get_daily_log(db, "u1", date(2024, 6, 1))
    assert log.target_calories == 2080
    assert log.total_calories == 600 + 1400
    assert log.remaining_calories == 80
    assert log.total_macros.protein == 90.0
    assert log.protein_progress == pytest.approx(90 / 168 * 100)
    assert log.target_met
    assert log.meal_count("lunch") == 1
    assert log.meals[1].servings == 2.0


def test_remove_logged_meal(db):
    """Test removing a meal updates the log and unknown ids are reported."""
    _with_target(db)
    entry = _entry(datetime(2024, 6, 1, 8), 600)
    store.log_meal(db, "u1", entry)
    db.commit()

    assert store.remove_logged_meal(db, "u1", date(2024, 6, 1), "missing") is None
    log = store.remove_logged_meal(db, "u1", date(2024, 6, 1), entry.id)
    db.commit()

    assert log.meals == []
    assert store.get_daily_log(db, "u1", date(2024, 6, 1)).total_calories == 0


def test_adherence_and_average_calories(db):
    """Test adherence counts days within 5% of target and averages eaten calories."""
    _with_target(db)
    store.log_meal(db, "u1", _entry(datetime(2024, 6, 1, 12), 2000))
    store.log_meal(db, "u1", _entry(datetime(2024, 6, 2, 12), 1000))
    db.commit()

    assert store.adherence_rate(db, "u1", date(2024, 6, 1), date(2024, 6, 7)) == 50.0
    assert store.average_daily_calories(db, "u1", date(2024, 6, 1), date(2024, 6, 7)) == 1500.0
    assert store.adherence_rate(db, "u1", date(2024, 7, 1), date(2024, 7, 7)) == 0.0
    assert store.average_daily_calories(db, "u1", date(2024, 7, 1), date(2024, 7, 7)) is None
