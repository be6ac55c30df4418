"""Constants for the baker_scale package."""

DOMAIN = "baker_scale"

# Backend identifiers (persisted under STORAGE_KEY_SELECTED_SCALE)
SCALE_SERVICE_MOCK = "MOCK"
SCALE_SERVICE_ETEKCITY = "ETEKCITY"
SCALE_SERVICE_BLUETOOTH = "BLUETOOTH"
SCALE_SERVICE_LEFU = "LEFU"

SCALE_SERVICES = (
    SCALE_SERVICE_MOCK,
    SCALE_SERVICE_ETEKCITY,
    SCALE_SERVICE_BLUETOOTH,
    SCALE_SERVICE_LEFU,
)

SCALE_SERVICE_LABELS = {
    SCALE_SERVICE_MOCK: "Mock Scale (Testing)",
    SCALE_SERVICE_ETEKCITY: "Etekcity Scale",
    SCALE_SERVICE_BLUETOOTH: "Generic Bluetooth Scale",
    SCALE_SERVICE_LEFU: "Lefu Kitchen Scale",
}

DEFAULT_SCALE_SERVICE = SCALE_SERVICE_MOCK

# Persistence keys
STORAGE_KEY_SELECTED_SCALE = "selectedScale"

# Scale settings keys
CONF_SCALE_SERVICE = "scale_service"
CONF_CONNECT_TIMEOUT = "connect_timeout"
CONF_SCAN_TIMEOUT = "scan_timeout"
CONF_HEALTH_CHECK_INTERVAL = "health_check_interval"
CONF_AUTO_RECONNECT = "auto_reconnect"

# Speech settings keys
CONF_RATE = "rate"
CONF_PITCH = "pitch"
CONF_LANGUAGE = "language"
CONF_REPEAT_INTERVAL = "repeat_interval"
CONF_WORD_PAUSE = "word_pause"
CONF_POLL_INTERVAL = "poll_interval"
CONF_MAX_POLLS = "max_polls"
CONF_SETTLE_DELAY = "settle_delay"
CONF_SEQUENCE_DELAY = "sequence_delay"
CONF_STEP_DELAY = "step_delay"

# Coordinator timing (seconds)
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_SCAN_TIMEOUT = 30.0
DEFAULT_HEALTH_CHECK_INTERVAL = 31.0

# Speech timing (seconds)
DEFAULT_SPEECH_RATE = 0.8
DEFAULT_SPEECH_PITCH = 1.0
DEFAULT_SPEECH_LANGUAGE = "en-US"
SPEECH_REPEAT_INTERVAL = 3.0
SPEECH_WORD_PAUSE = 0.2
SPEECH_POLL_INTERVAL = 0.1
SPEECH_MAX_POLLS = 100
SPEECH_SETTLE_DELAY = 0.15
SPEECH_SEQUENCE_DELAY = 2.5
SPEECH_STEP_DELAY = 1.0

# Mock backend simulation
MOCK_DEVICE_ID = "mock-device-1"
MOCK_DEVICE_NAME = "Mock Scale"
MOCK_SCAN_DELAY = 1.0
MOCK_CONNECT_DELAY = 1.0
MOCK_TICK_INTERVAL = 1.0
MOCK_STEP_MIN = 10
MOCK_STEP_MAX = 50
MOCK_MAX_WEIGHT = 500

# Generic Bluetooth weight characteristic (float32 little-endian payload)
GENERIC_WEIGHT_SERVICE_UUID = "00002a6e-0000-1000-8000-00805f9b34fb"
GENERIC_WEIGHT_CHARACTERISTIC_UUID = "00002a6d-0000-1000-8000-00805f9b34fb"

# Etekcity nutrition scale
ETEKCITY_SERVICE_UUID = "0000fff0-0000-1000-8000-00805f9b34fb"
ETEKCITY_CHARACTERISTIC_UUID = "0000fff1-0000-1000-8000-00805f9b34fb"
ETEKCITY_NAME_PATTERN = "Etekcity"
ETEKCITY_DEVICE_NAME = "Etekcity Nutrition Scale"

# Lefu kitchen scale
LEFU_DEVICE_NAME = "Lefu Kitchen Scale"

# Units
UNIT_GRAMS = "g"

# Spoken phrases
MSG_PERFECT_WEIGHT = "Stop. Well done! Click Next"
MSG_ADD_MORE = "Add more"
MSG_ADD_SLOWLY = "Add slowly"
MSG_TOO_MUCH = "Too much. Take some out"
MSG_INGREDIENT_INSTRUCTION = "Please add"
MSG_TARE_NEEDED = "Please tare the scale"
MSG_START_BAKING = "Let's start baking!"
MSG_FIRST_INGREDIENT = "First ingredient"
MSG_SECOND_INGREDIENT = "Second ingredient"
MSG_THIRD_INGREDIENT = "Third ingredient"
MSG_NEXT_INGREDIENT = "Next ingredient"
MSG_PRESS_FINISH = ". Press finish to complete."
MSG_PRESS_NEXT = ". Press next when ready."


def ordinal_message(index: int) -> str:
    """Return the spoken ordinal for the ingredient at ``index``.

    Examples:
        >>> ordinal_message(0)
        'First ingredient'
        >>> ordinal_message(7)
        'Next ingredient'
    """
    ordinals = (MSG_FIRST_INGREDIENT, MSG_SECOND_INGREDIENT, MSG_THIRD_INGREDIENT)
    if 0 <= index < len(ordinals):
        return ordinals[index]
    return MSG_NEXT_INGREDIENT
