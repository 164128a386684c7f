import os

DB_USER = os.getenv("DB_ROOT_USER", "root")
DB_PASS = os.getenv("DB_PASSWORD", "123456")

# Mặc định trỏ về 'db'
DB_HOST = os.getenv("ORDER_DB_HOST", "db")
DB_NAME = os.getenv("ORDER_DB_NAME", "order_db")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"mysql+pymysql://{DB_USER}:{DB_PASS}@{DB_HOST}/{DB_NAME}",
)


def _flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Empty baskets are accepted unless this is turned on
REQUIRE_NONEMPTY_BASKET = _flag("REQUIRE_NONEMPTY_BASKET")

# Upper bound for one order total; keeps loyalty_points inside a 32-bit column
MAX_ORDER_TOTAL = float(os.getenv("MAX_ORDER_TOTAL", "1000000"))

# --- NOTIFICATION ---
NOTIFICATION_URL = os.getenv("NOTIFICATION_URL")

# --- KAFKA CONSUMER ---
KAFKA_BOOTSTRAP_SERVERS = os.getenv("KAFKA_BOOTSTRAP_SERVERS")
KAFKA_TOPIC = os.getenv("KAFKA_TOPIC", "order_paid")
KAFKA_GROUP_ID = os.getenv("KAFKA_GROUP_ID", "order_service_group")
KAFKA_RETRY_BACKOFF = float(os.getenv("KAFKA_RETRY_BACKOFF", "1.0"))
KAFKA_RETRY_BACKOFF_MAX = float(os.getenv("KAFKA_RETRY_BACKOFF_MAX", "30.0"))

# --- LOGGING ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = _flag("LOG_JSON")
