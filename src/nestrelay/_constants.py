"""Internal constants shared across the relay."""

AUTH_URL = "https://home.nest.com/login/oauth2"
TOKEN_URL = "https://api.home.nest.com/oauth2/access_token"
API_URL = "https://developer-api.nest.com"

#: Redirect hops followed by the snapshot GET before giving up.
MAX_REDIRECTS = 10

#: Document id of the locally-posted sensor device.
LOCAL_DEVICE_NAME = "feather"

DEFAULT_CHECKUP_INTERVAL_SECONDS = 3600
DEFAULT_STALE_AFTER_SECONDS = 3600
DEFAULT_PORT = 8080

# ------------------------------------------------------------------
# Persisted layout
# ------------------------------------------------------------------

AUTH_COLLECTION = "auth"
USER_COLLECTION = "user"
THERMOSTAT_COLLECTION = "thermostat"
DEVICE_COLLECTION = "device"
LOG_COLLECTION = "log"

# Field names
USED_FIELD = "used"
CREATED_FIELD = "created"
UPDATED_FIELD = "updated"
ACCESS_TOKEN_FIELD = "access_token"
TIMESTAMP_FIELD = "timestamp"
NAME_FIELD = "name"


def user_thermostats(user_id: str) -> str:
    """Collection path holding the thermostats linked under *user_id*."""
    return f"{USER_COLLECTION}/{user_id}/{THERMOSTAT_COLLECTION}"


def device_log(device_name: str) -> str:
    """Collection path holding the running log of *device_name*."""
    return f"{DEVICE_COLLECTION}/{device_name}/{LOG_COLLECTION}"
