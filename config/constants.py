"""Application constants and configuration values."""


class ProcessConstants:
    """External process execution constants."""

    # Timeouts (seconds)
    DEFAULT_TIMEOUT = 30.0
    KILL_GRACE_TIMEOUT = 2.0
    READER_JOIN_TIMEOUT = 2.0

    # Polling slice used while draining pipes so cancellation stays responsive
    COMMUNICATE_SLICE = 0.1

    EXIT_CODE_FAILED = -1

    # ProcessOutcome.failure values
    FAILURE_LAUNCH = 'launch'
    FAILURE_TIMEOUT = 'timeout'
    FAILURE_CANCELLED = 'cancelled'

    MESSAGE_CANCELLED = 'Process was cancelled'
    MESSAGE_TIMEOUT = 'Process timed out after {seconds:g} seconds'
    MESSAGE_LAUNCH_FAILED = 'Failed to start process: {reason}'


class ADBConstants:
    """ADB-related constants."""

    TOOL_NAME = 'adb'
    TOOLS_FOLDER = 'platform-tools'
    SDK_ENV_VARS = ('ANDROID_HOME', 'ANDROID_SDK_ROOT')

    # Command timeouts (seconds)
    VERSION_TIMEOUT = 3.0
    DEFAULT_COMMAND_TIMEOUT = 5.0
    SCREENSHOT_TIMEOUT = 10.0

    # Device states
    DEVICE_STATE_DEVICE = 'device'
    DEVICE_STATE_OFFLINE = 'offline'
    DEVICE_STATE_UNAUTHORIZED = 'unauthorized'

    DEVICES_HEADER = 'List of devices'
    MODEL_PREFIX = 'model:'

    # Argument lists
    FLAG_SERIAL = '-s'
    CMD_VERSION = ['version']
    CMD_START_SERVER = ['start-server']
    CMD_DEVICES = ['devices', '-l']
    CMD_LOGCAT = 'logcat'
    CMD_SCREENCAP = ['exec-out', 'screencap', '-p']


class ScrcpyConstants:
    """scrcpy launch constants."""

    TOOL_NAME = 'scrcpy'
    TOOLS_FOLDER = 'scrcpy'

    FLAG_SERIAL = '-s'
    FLAG_BIT_RATE = '--video-bit-rate'
    FLAG_MAX_SIZE = '--max-size'
    FLAG_MAX_FPS = '--max-fps'
    FLAG_STAY_AWAKE = '--stay-awake'
    FLAG_FULLSCREEN = '--fullscreen'
    FLAG_TURN_SCREEN_OFF = '--turn-screen-off'

    # Maximum wait for a superseded session to report its exit
    SUPERSEDE_WAIT_TIMEOUT = 5.0


class LogcatConstants:
    """Session-scoped logcat capture constants."""

    MAX_ENTRIES = 1000
    RECENT_WINDOW_SECONDS = 10
    ERROR_FILTER = '*:E'
    JOIN_TIMEOUT = 3.0


class PathConstants:
    """File and directory path constants."""

    APP_DATA_FOLDER = 'PhoneMirror'
    SETTINGS_FILE_NAME = 'settings.json'
    SETTINGS_BACKUP_FILE_NAME = 'settings.backup.json'
    SCREENSHOT_PREFIX = 'PhoneMirror_Screenshot_'
    SCREENSHOT_EXT = '.png'

    # How many parents of the application directory are searched for tools
    TOOL_SEARCH_DEPTH = 5


class DeviceConstants:
    """Device polling constants."""

    DEFAULT_POLL_INTERVAL_S = 2.0
    MIN_POLL_INTERVAL_S = 0.5


class LoggingConstants:
    """Logging configuration constants."""

    DEFAULT_LOG_LEVEL = 'INFO'
    DEBUG_LOG_LEVEL = 'DEBUG'
    VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ApplicationConstants:
    """General application constants."""

    APP_NAME = "Phone Mirror"
    APP_VERSION = "1.0.0"
    APP_DESCRIPTION = "Android screen mirroring front-end for adb and scrcpy"
