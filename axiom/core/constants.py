"""
Project constants definitions
"""

# ============================================================
# Connection Links
# ============================================================

VLESS_SCHEME_PREFIX = "vless://"
DEFAULT_VLESS_PORT = 443

# ============================================================
# Engine Config
# ============================================================

ENGINE_LOG_LEVEL = "warning"

INBOUND_TAG = "tun-in"
INBOUND_PORT = 10808
INBOUND_PROTOCOL = "dokodemo-door"
INBOUND_NETWORK = "tcp,udp"
SNIFFING_DEST_OVERRIDE = ("http", "tls")

PROXY_OUTBOUND_TAG = "proxy"
DIRECT_OUTBOUND_TAG = "direct"
DIRECT_OUTBOUND_PROTOCOL = "freedom"

DEFAULT_FLOW = "xtls-rprx-vision"
VLESS_ENCRYPTION = "none"
STREAM_NETWORK = "tcp"
STREAM_SECURITY = "reality"
REALITY_FINGERPRINT = "chrome"

ENGINE_BINARY_CANDIDATES = ("xray", "xray.exe", "v2ray", "v2ray.exe")

# ============================================================
# Tunnel Lifecycle
# ============================================================

DEFAULT_START_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 0.5
ENGINE_STOP_TIMEOUT = 3.0

STATUS_CONNECTED = "CONNECTED"
STATUS_DISCONNECTED = "DISCONNECTED"

# ============================================================
# Capture Interface
# ============================================================

DEFAULT_CAPTURE_DEVICE = "axiom0"
DEFAULT_CAPTURE_ADDRESS = "10.0.1.1/24"
DEFAULT_CAPTURE_MTU = 1500

# ============================================================
# Event Log
# ============================================================

EVENT_LOG_CAPACITY = 50

# ============================================================
# State Storage
# ============================================================

DEFAULT_STATE_DIR = "~/.axiom"
PROFILE_STATE_KEY = "axiom_vless_config"
SESSION_STATE_KEY = "session"
ENGINE_CONFIG_FILENAME = "config.json"
ENGINE_LOG_FILENAME = "engine.log"
