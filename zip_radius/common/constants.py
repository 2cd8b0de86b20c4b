"""Application constants."""

USER_AGENT = "zip-radius/1.0"
STAGES = (
    "build-universe",
    "resolve-facilities",
    "query",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

ZIP_CODE_MIN = 0
ZIP_CODE_MAX = 99999
COORDINATE_DECIMALS = 4
DISTANCE_DECIMALS = 2
METERS_PER_MILE = 1609.344
# Floating slack for the inclusive radius bound, about 1.6 micrometres.
BOUNDARY_TOLERANCE_MILES = 1e-9

UNIVERSE_HEADERS = ["code", "latitude", "longitude"]
RESULT_HEADERS = [
    "facility_id",
    "facility_latitude",
    "facility_longitude",
    "code",
    "code_latitude",
    "code_longitude",
    "distance_miles",
]

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "facility_id",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
