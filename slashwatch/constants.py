"""
Slashwatch Constants

This module consolidates global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# CONTRACT CONSTANTS
# ==================================================================================
# Multicall3 is deployed at the same address on every EVM chain
MULTICALL3_ADDRESS = '0xcA11bde05977b3631167028862bE2a173976CA11'
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


# ==================================================================================
# PROTOCOL DEFAULTS
# ==================================================================================
# Placeholders only. Every value is overwritten from the chain at startup.
DEFAULT_ROUND_SIZE = 192
DEFAULT_ROUND_SIZE_IN_EPOCHS = 6
DEFAULT_EXECUTION_DELAY_ROUNDS = 28
DEFAULT_LIFETIME_ROUNDS = 34
DEFAULT_SLASH_OFFSET_ROUNDS = 2
DEFAULT_QUORUM = 65
DEFAULT_COMMITTEE_SIZE = 48
DEFAULT_SLOT_DURATION = 36  # seconds
DEFAULT_EPOCH_DURATION = 32  # slots


# ==================================================================================
# POLLING AND CACHE DEFAULTS
# ==================================================================================
POLL_INTERVAL = 120.0  # seconds between poll cycles
RPC_TIMEOUT = 10.0  # seconds per HTTP request
CYCLE_TIMEOUT = 90.0  # seconds per poll cycle
ROUND_CACHE_TTL = 30.0  # seconds for rounds that are not executed yet
DETAILS_CACHE_TTL = 300.0  # seconds for round details that are not executed yet
MAX_CACHED_ROUNDS = 100  # bounded size of the round cache TTL tier
MAX_EXECUTED_ROUNDS_TO_SHOW = 2
MAX_ROUNDS_TO_SCAN_FOR_HISTORY = 5

API_HOST = '127.0.0.1'
API_PORT = 8780

SECONDS_PER_DAY = 86400
WEI_PER_ETHER = 10 ** 18


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
