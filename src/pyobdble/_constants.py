"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# BLE GATT surface of the common ELM327 "FFF0" clones
# ------------------------------------------------------------------

ELM327_SERVICE_UUID = "0000fff0-0000-1000-8000-00805f9b34fb"
ELM327_WRITE_UUID = "0000fff2-0000-1000-8000-00805f9b34fb"
ELM327_NOTIFY_UUID = "0000fff1-0000-1000-8000-00805f9b34fb"

# ------------------------------------------------------------------
# ELM327 wire format
# ------------------------------------------------------------------

PROMPT = ">"
LINE_ENDING = "\r"

RESET = "ATZ"
ECHO_OFF = "ATE0"
LINEFEEDS_OFF = "ATL0"
SPACES_OFF = "ATS0"
HEADERS_OFF = "ATH0"
AUTO_PROTOCOL = "ATSP0"

DEFAULT_INIT_COMMANDS: tuple[str, ...] = (
    RESET,
    ECHO_OFF,
    LINEFEEDS_OFF,
    SPACES_OFF,
    HEADERS_OFF,
    AUTO_PROTOCOL,
)

MODE_01_REQUEST = "01"
MODE_01_RESPONSE = "41"

# Advertised-name fragments used by consumer OBD-II dongles.
DEFAULT_NAME_HINTS: tuple[str, ...] = ("OBD", "ELM", "VGATE", "VEEPEAK", "BAFX")

# Bytes of ATT overhead subtracted from the MTU when bleak cannot report
# a write-without-response size.
ATT_HEADER_SIZE = 3
DEFAULT_ATT_MTU = 23

UNKNOWN_DEVICE_NAME = "Unknown Device"
