import os

BIND_ADDRESS = os.environ.get("BIND_ADDRESS", "127.0.0.1:10000")
INGEST_ADDRESS = os.environ.get("INGEST_ADDRESS", "127.0.0.1:10001")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE") or None
BROADCAST_CAPACITY = int(os.environ.get("BROADCAST_CAPACITY", "32"))
INGRESS_QUEUE_SIZE = int(os.environ.get("INGRESS_QUEUE_SIZE", "100000"))
INGRESS_BACKPRESSURE = os.environ.get("INGRESS_BACKPRESSURE", "block")
MAX_INFLIGHT_SLOTS = int(os.environ.get("MAX_INFLIGHT_SLOTS", "256"))
MAX_FRAME_BYTES = int(os.environ.get("MAX_FRAME_BYTES", str(64 * 1024 * 1024)))
MAX_INGEST_LINE_BYTES = 30 * 1024 * 1024
DEFAULT_RPC_URL = os.environ.get("RPC_URL", "http://localhost:8899")
