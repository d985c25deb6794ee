# storefront/config/constants.py

# -----------------------------
# SESSION SNAPSHOTS
# -----------------------------

SESSION_STORAGE_KEY = "expatUserSession"
SESSION_EXPIRY_HOURS = 24

CART_STORAGE_KEY = "expatCartItems"
CART_EXPIRY_HOURS = 168               # 7 days

REMEMBER_ME_KEY = "rememberMe"
SAVED_EMAIL_KEY = "savedEmail"

# -----------------------------
# AUTH TOKEN
# -----------------------------

TOKEN_KEY = "expat_auth_token"
TOKEN_EXPIRY_KEY = "expat_auth_token_expiry"
TOKEN_EXPIRY_HOURS = 2

# -----------------------------
# STORAGE WRITES
# -----------------------------

DEFAULT_DEBOUNCE_MS = 300
CART_PERSIST_DEBOUNCE_MS = 500
STORAGE_CACHE_TTL_SECONDS = 5

# -----------------------------
# CART LIMITS
# -----------------------------

MAX_ITEM_QUANTITY = 10
MAX_CART_ITEMS = 50
DEFAULT_CURRENCY = "TZS"
PLACEHOLDER_IMAGE = "/placeholder.svg"

# -----------------------------
# PRODUCT UPDATE PROXY
# -----------------------------

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_UPDATE_REQUEST_BYTES = 100 * 1024 * 1024
PRODUCT_UPDATE_TIMEOUT_SECONDS = 5 * 60
LONG_DESCRIPTION_CHARS = 10000
MULTIPART_PARSE_FAILURE = "Failed to parse multipart servlet request"

# -----------------------------
# VERIFICATION
# -----------------------------

VERIFIED = "VERIFIED"
PENDING = "PENDING"
VERIFICATION_REQUIRED_MESSAGE = (
    "Account verification required. Please verify your email to access this feature. "
    "Go to Account → Verification to complete the process."
)
