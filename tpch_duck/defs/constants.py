"""Business rules and thresholds for the TPC-H project.

These constants define the categorisation thresholds used by the order
models and the parameters of the data quality rules. They are passed to the
model templates as project variables (``var('order_size_small_max')``).
"""

# -----------------------------------------------------------------------------
# Order Status
# -----------------------------------------------------------------------------

# TPC-H order status codes: Open, Fulfilled, Partial
ORDER_STATUSES = ("O", "F", "P")
FULFILLED_ORDER_STATUS = "F"

# Line item status codes: Open, Fulfilled
LINE_STATUSES = ("O", "F")
OPEN_LINE_STATUS = "O"

STATUS_CATEGORIES = ("Open", "Fulfilled", "Partial", "Unknown")

# -----------------------------------------------------------------------------
# Order Size
# -----------------------------------------------------------------------------

# Orders are bucketed by total_price:
#   - Small:      < 50,000
#   - Medium:     50,000 - 150,000
#   - Large:      150,000 - 300,000
#   - Very Large: >= 300,000

ORDER_SIZE_SMALL_MAX = 50_000
ORDER_SIZE_MEDIUM_MAX = 150_000
ORDER_SIZE_LARGE_MAX = 300_000

ORDER_SIZES = ("Small", "Medium", "Large", "Very Large")

# -----------------------------------------------------------------------------
# Priority
# -----------------------------------------------------------------------------

HIGH_PRIORITIES = ("1-URGENT", "2-HIGH")
MEDIUM_PRIORITIES = ("3-MEDIUM",)

PRIORITY_LEVELS = ("High Priority", "Medium Priority", "Low Priority")

FULFILLMENT_STATUSES = (
    "Completed High Priority",
    "Completed Normal",
    "Pending High Priority",
    "Pending Normal",
)

# -----------------------------------------------------------------------------
# Data Quality
# -----------------------------------------------------------------------------

# Days subtracted from the watermark on each incremental run
LOOKBACK_DAYS = 3

# Relative difference allowed between an order total and its line items
RECONCILIATION_TOLERANCE = 0.01

# TPC-H has 25 nations
NATION_KEY_MIN = 0
NATION_KEY_MAX = 24

# TPC-H phone numbers are formatted as "NN-NNN-NNN-NNNN"
PHONE_LENGTH = 15

# Source freshness thresholds
FRESHNESS_WARN_HOURS = 12
FRESHNESS_ERROR_HOURS = 24
