"""Constants for the Yandex HomeKit bridge."""

from __future__ import annotations

from enum import Enum

API_BASE_URL = "https://api.iot.yandex.net/v1.0"
USER_INFO_PATH = "user/info"
DEVICE_ACTIONS_PATH = "devices/actions"

OAUTH_TOKEN_URL = "https://oauth.yandex.ru/token"
OAUTH_DEVICE_CODE_URL = "https://oauth.yandex.ru/device/code"

DEFAULT_FETCH_INTERVAL = 1.5
DEFAULT_DEBOUNCE_WAIT = 0.4
DEFAULT_DEBOUNCE_MAX_WAIT = 0.7
DEFAULT_BRIDGE_NAME = "Yandex Bridge"
DEFAULT_PORT = 47129

DEFAULT_MANUFACTURER = "Yandex"

# Local color temperature range in mireds.
LOCAL_MIRED_MIN = 140
LOCAL_MIRED_MAX = 500

# Local percentage scale used by brightness-like characteristics.
LOCAL_PERCENT_MIN = 0
LOCAL_PERCENT_MAX = 100

UNIT_KELVIN = "unit.temperature.kelvin"
UNIT_PERCENT = "unit.percent"


class CapabilityType(str, Enum):
    """Controllable facets a remote device may expose."""

    ON_OFF = "devices.capabilities.on_off"
    COLOR_SETTING = "devices.capabilities.color_setting"
    VIDEO_STREAM = "devices.capabilities.video_stream"
    MODE = "devices.capabilities.mode"
    RANGE = "devices.capabilities.range"
    TOGGLE = "devices.capabilities.toggle"


class PropertyType(str, Enum):
    """Reported facets a remote device may expose."""

    FLOAT = "devices.properties.float"
    EVENT = "devices.properties.event"


class DeviceType(str, Enum):
    """Remote device categories the bridge distinguishes between."""

    CAMERA = "devices.types.camera"
    HUMIDIFIER = "devices.types.humidifier"
    LIGHT = "devices.types.light"
    MEDIA_DEVICE = "devices.types.media_device"
    TV = "devices.types.media_device.tv"
    OPENABLE = "devices.types.openable"
    CURTAIN = "devices.types.openable.curtain"
    OTHER = "devices.types.other"
    PURIFIER = "devices.types.purifier"
    SENSOR = "devices.types.sensor"
    SENSOR_BUTTON = "devices.types.sensor.button"
    SENSOR_CLIMATE = "devices.types.sensor.climate"
    SENSOR_GAS = "devices.types.sensor.gas"
    SENSOR_ILLUMINATION = "devices.types.sensor.illumination"
    SENSOR_MOTION = "devices.types.sensor.motion"
    SENSOR_OPEN = "devices.types.sensor.open"
    SENSOR_SMOKE = "devices.types.sensor.smoke"
    SENSOR_WATER_LEAK = "devices.types.sensor.water_leak"
    SOCKET = "devices.types.socket"
    SWITCH = "devices.types.switch"
    THERMOSTAT = "devices.types.thermostat"
    THERMOSTAT_AC = "devices.types.thermostat.ac"
    VACUUM_CLEANER = "devices.types.vacuum_cleaner"
    HUB = "devices.types.hub"


# Float property instances averaged into a synthesized air quality reading.
AIR_QUALITY_COMPONENTS: tuple[str, ...] = (
    "co2_level",
    "pm1_density",
    "pm2.5_density",
    "pm10_density",
    "tvoc",
)
AIR_QUALITY_INSTANCE = "air_quality"
