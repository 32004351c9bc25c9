"""Application constants."""

USER_AGENT = "ward-locator/1.0 (+ward boundary lookup)"
DEFAULT_DATASET_URL = "https://raw.githubusercontent.com/Thabang-777/wards-geojson/main/wards.geojson"
DATASET_CACHE_KEY = "cached_wards_geojson"
CACHE_TTL_HOURS = 24
FETCH_TIMEOUT_SECONDS = 30.0
CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_SIMPLIFY_TOLERANCE = 0.005
EARTH_RADIUS_KM = 6371.0
TIMEOUT_MESSAGE = "Request timed out. Please check your internet connection."
EXIT_SUCCESS = 0
EXIT_DEGRADED = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "component",
    "event",
    "status",
    "source",
    "duration_ms",
    "feature_count",
    "age_hours",
    "error_code",
    "message",
)
