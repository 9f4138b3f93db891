# Settings file read at startup, overridable with SETTINGS_PATH
SETTINGS_PATH = "settings.json"

# Delay between captures
GRAB_INTERVAL_MS = 100

# Sample every Nth pixel along both axes of a region
SKIP_PIXELS = 1

# EMA weight of the previous color: 1 = frozen, 0 = no smoothing
SMOOTHING_FACTOR = 0.5

# mss monitor index (0 = all monitors combined, 1 = primary)
MONITOR_ID = 1

# Give up on a frame that takes longer than this to capture
CAPTURE_TIMEOUT_MS = 1000

# Home Assistant brightness range (255, or 65535 for 16-bit integrations)
BRIGHTNESS_SCALE = 255

# Seconds to wait for each WebSocket handshake message
AUTH_TIMEOUT_SEC = 10.0

TRANSPORTS = ("rest", "websocket")
CAPTURE_BACKENDS = ("mss", "opencv")
SCHEDULES = ("fixed_delay", "fixed_rate")
