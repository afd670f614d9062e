"""Configuration constants for the development server."""

HOST: str = "127.0.0.1"
PORT: int = 4200
SERVER_NAME: str = "devserve/0.1"
BUFFER_SIZE: int = 1024
READ_CHUNK_SIZE: int = 65_536
SOCKET_TIMEOUT_SECS: int = 5
MAX_REQUEST_BYTES: int = 1_048_576
MAX_HEADER_BYTES: int = 16_384
MAX_BODY_BYTES: int = 524_288
MAX_TARGET_LENGTH: int = 8_192

WORKER_COUNT: int = 4
REQUEST_QUEUE_SIZE: int = 64
KEEPALIVE_TIMEOUT_SECS: int = 5
MAX_KEEPALIVE_REQUESTS: int = 100
LOG_FORMAT: str = "plain"

STATIC_DIR: str = "public"
NOT_FOUND_PAGE: str = "404.html"
NOT_FOUND_STATUS: int = 200
API_PREFIX: str = "/api"

STATE_FILE: str = "./server.state.temp"
PERSIST_STATE: bool = True
STATE_FLUSH_TIMEOUT_SECS: float = 2.0

DEV_HOT_RELOAD: bool = False
RELOAD_EVENTS_URL: str = "http://localhost:35729"
