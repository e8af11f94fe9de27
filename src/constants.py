"""
Shared constants used across multiple modules.
Single source of truth for metric keys, reducer groups and unit factors.
"""

# Record types the daily aggregator knows how to reduce
SLEEP_SESSION = "sleep_session"
NUTRITION = "nutrition"
STEPS = "steps"
WORKOUT = "workout"
RESTING_HEART_RATE = "resting_heart_rate"
WEIGHT = "weight"
BLOOD_PRESSURE = "blood_pressure"

KNOWN_RECORD_TYPES = {
    SLEEP_SESSION, NUTRITION, STEPS, WORKOUT,
    RESTING_HEART_RATE, WEIGHT, BLOOD_PRESSURE,
}

DEFAULT_SOURCE = "Unknown"
DEFAULT_ACTIVITY = "Workout"

# DailyRecord fields reduced by summing
SUMMED_FIELDS = (
    "sugar_g", "calories", "carbs_g", "protein_g", "fat_g",
    "steps", "workout_minutes", "workout_calories", "workout_load",
)
NUTRITION_FIELDS = ("calories", "carbs_g", "protein_g", "fat_g", "sugar_g")

# Every numeric column a DailyRecord exposes
NUMERIC_DAY_FIELDS = (
    "sleep_hours", "sleep_minutes", "sleep_quality",
    *SUMMED_FIELDS,
    "rhr_bpm", "weight_kg", "bp_systolic", "bp_diastolic",
)

# Metrics charted, checked for anomalies and correlated by default
SIGNAL_METRICS = [
    "sleep_hours", "sugar_g", "workout_minutes", "workout_load",
    "rhr_bpm", "weight_kg", "steps", "calories", "protein_g",
]

# Workout load = duration_min * factor
INTENSITY_FACTORS = {"hard": 1.35, "easy": 0.8, "moderate": 1.0}
DEFAULT_INTENSITY_FACTOR = 1.0

KG_PER_LB = 1 / 2.2046226218

# MAD -> SD consistency constant for a normal distribution
MAD_TO_SD = 1.4826
