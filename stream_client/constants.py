# =============================================================================
# Stream Client -- Constants
# =============================================================================

# -- Reconnection -------------------------------------------------------------

RETRY_INTERVAL = 2.0  # seconds
MAX_RETRIES = 10
UNBOUNDED = -1  # max_retries value meaning "retry forever"
AUTO_RECONNECT = True

# -- Timing (seconds) ----------------------------------------------------------

CONNECTION_TIMEOUT = 10.0
CLOSE_TIMEOUT = 5.0
SHUTDOWN_TIMEOUT = 5.0

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_GOING_AWAY = 1001
WS_CLOSE_NO_STATUS = 1005
WS_CLOSE_ABNORMAL = 1006

CLIENT_CLOSE_REASON = "Client disconnected"

# -- Server-Sent Events --------------------------------------------------------

SSE_CONTENT_TYPE = "text/event-stream"
SSE_LAST_EVENT_ID_HEADER = "Last-Event-ID"
SSE_DEFAULT_EVENT = "message"

# -- Identifiers ---------------------------------------------------------------

CONNECTION_ID_LENGTH = 8
