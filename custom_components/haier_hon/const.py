"""Constants for Haier hOn integration.

This module contains all the constants used throughout the integration,
including API endpoints, client identity, configuration keys, and the
wire/capability mapping tables.
"""

DOMAIN = "haier_hon"

AUTH_API = "https://account2.hon-smarthome.com"
API_URL = "https://api-iot.he.services"
CLIENT_ID = (
    "3MVG9QDx8IX8nP5T2Ha8ofvlmjLZl5L_gvfbT9.HJvpHGKoAS_dcMN8LYpTSYeVFCraUnV."
    "2Ag1Ki7m4znVO6"
)
REDIRECT_URI = "hon://mobilesdk/detect/oauth/done"
APP_VERSION = "2.0.10"
OS_VERSION = "17.6.1"
MOBILE_OS = "ios"
DEVICE_MODEL = "iPhone16,2"
USER_AGENT = f"hOn/{APP_VERSION} (iPhone; iOS {OS_VERSION}; Scale/3.00)"
APPLIANCE_TYPE_AC = "AC"

TOKEN_LIFETIME = 8 * 60 * 60  # Seconds, used when the server does not say
TOKEN_REFRESH_BUFFER = 5 * 60
MAX_LOGIN_REDIRECTS = 5
MAX_TOKEN_REDIRECTS = 10

DEFAULT_POLL_INTERVAL = 5
MIN_POLL_INTERVAL = 5
MAX_POLL_INTERVAL = 3600
COMMAND_SETTLE_DELAY = 10  # Seconds polled state is ignored after a write

MIN_TEMPERATURE = 16
MAX_TEMPERATURE = 30
ANTI_FREEZE_TEMPERATURE = 10

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"

CONF_ACCESS_TOKEN = "access_token"
CONF_ID_TOKEN = "id_token"
CONF_REFRESH_TOKEN = "refresh_token"
CONF_MOBILE_ID = "mobile_id"
CONF_POLL_INTERVAL = "poll_interval"

EVENT_CAPABILITY_CHANGED = f"{DOMAIN}_capability_changed"
UNAVAILABLE_REAUTH_REQUIRED = "reauth_required"

# Command names accepted by /commands/v1/send
COMMAND_START_PROGRAM = "startProgram"
COMMAND_STOP_PROGRAM = "stopProgram"
COMMAND_SETTINGS = "settings"

# Wire parameter names
PARAM_ON_OFF = "onOffStatus"
PARAM_MODE = "machMode"
PARAM_TEMPERATURE = "tempSel"
PARAM_FAN_SPEED = "windSpeed"
PARAM_SWING_HORIZONTAL = "windDirectionHorizontal"
PARAM_SWING_VERTICAL = "windDirectionVertical"
PARAM_ANTI_FREEZE = "10degreeHeatingStatus"
PARAM_ECO_PILOT = "humanSensingStatus"
PARAM_TEMP_INDOOR = "tempIndoor"
PARAM_TEMP_OUTDOOR = ("tempOutdoor", "tempAirOutdoor")
EXCLUDED_ANCILLARY_PARAMETER = "programRules"

# Capability keys
CAP_POWER = "power"
CAP_HVAC_MODE = "hvac_mode"
CAP_TARGET_TEMPERATURE = "target_temperature"
CAP_FAN_MODE = "fan_mode"
CAP_SWING_MODE = "swing_mode"
CAP_ECO_PILOT = "eco_pilot"
CAP_INDOOR_TEMPERATURE = "indoor_temperature"
CAP_OUTDOOR_TEMPERATURE = "outdoor_temperature"

MODE_AUTO = "auto"
MODE_COOL = "cool"
MODE_DRY = "dry"
MODE_HEAT = "heat"
MODE_FAN_ONLY = "fan_only"
MODE_ANTI_FREEZE = "anti_freeze"

HVAC_MODE_WIRE_MAP = {
    "0": MODE_AUTO,
    "1": MODE_COOL,
    "2": MODE_DRY,
    "3": MODE_DRY,
    "4": MODE_HEAT,
    "5": MODE_FAN_ONLY,
    "6": MODE_FAN_ONLY,
}
HVAC_MODE_REVERSE_MAP = {
    MODE_AUTO: "0",
    MODE_COOL: "1",
    MODE_HEAT: "4",
    MODE_DRY: "2",
    MODE_FAN_ONLY: "6",
}
HVAC_MODE_PROGRAM_MAP = {
    MODE_AUTO: "iot_auto",
    MODE_COOL: "iot_cool",
    MODE_HEAT: "iot_heat",
    MODE_DRY: "iot_dry",
    MODE_FAN_ONLY: "iot_fan",
    MODE_ANTI_FREEZE: "iot_10_heating",
}

FAN_HIGH = "high"
FAN_MEDIUM = "medium"
FAN_LOW = "low"
FAN_AUTO = "auto"

FAN_MODE_WIRE_MAP = {
    "1": FAN_HIGH,
    "2": FAN_MEDIUM,
    "3": FAN_LOW,
    "4": FAN_AUTO,
    "5": FAN_AUTO,
}
FAN_MODE_REVERSE_MAP = {
    FAN_HIGH: "1",
    FAN_MEDIUM: "2",
    FAN_LOW: "3",
    FAN_AUTO: "5",
}

SWING_OFF = "off"
SWING_VERTICAL = "vertical"
SWING_HORIZONTAL = "horizontal"
SWING_BOTH = "both"
SWING_HORIZONTAL_ACTIVE = 7
SWING_VERTICAL_ACTIVE = 8

# (horizontal, vertical)
SWING_MODE_REVERSE_MAP = {
    SWING_OFF: ("0", "5"),
    SWING_VERTICAL: ("0", "8"),
    SWING_HORIZONTAL: ("7", "5"),
    SWING_BOTH: ("7", "8"),
}

ECO_PILOT_OFF = "off"
ECO_PILOT_WIRE_MAP = {
    "0": ECO_PILOT_OFF,
    "1": "avoid",
    "2": "follow",
}
ECO_PILOT_REVERSE_MAP = {value: key for key, value in ECO_PILOT_WIRE_MAP.items()}

# capability key -> (wire parameter, inverted)
TOGGLE_MAP = {
    "silent_mode": ("muteStatus", False),
    "rapid_mode": ("rapidMode", False),
    "sleep_mode": ("silentSleepStatus", False),
    "screen_display": ("screenDisplayStatus", False),
    "echo_mode": ("echoStatus", True),  # 0 = beep on
    "eco_mode": ("ecoMode", False),
    "health_mode": ("healthMode", False),
}
