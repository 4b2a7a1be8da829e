"""Internal constants shared across the library."""

BASE_URL = "https://api.foobot.io"
USER_AGENT = "pysensorcache"

API_KEY_HEADER = "x-api-key-token"
QUOTA_REMAINING_HEADER = "x-api-key-limit-remaining"

ONE_MINUTE = 60
ONE_HOUR = 60 * ONE_MINUTE
ONE_DAY = 24 * ONE_HOUR

#: The device publishes one reading every five minutes.
REPORTING_INTERVAL = 5 * ONE_MINUTE

#: Largest gap between consecutive readings still considered connected.
#: Tolerates late readings, never a missing one.
MAX_CONNECTED_DISTANCE = 6 * ONE_MINUTE

#: Smallest ``average_by`` the API treats as an actual average; anything
#: below is raw data.
MIN_AVERAGE_BY = 300

DEFAULT_DAILY_TARGET = 200

# Column layout reported by the device family.  Used for empty windows so
# consumers always receive a well-formed shape.
DEFAULT_SENSORS: tuple[str, ...] = ("time", "pm", "tmp", "hum", "co2", "voc", "allpollu")
DEFAULT_UNITS: tuple[str, ...] = ("s", "ugm3", "C", "pc", "ppm", "ppb", "%")
