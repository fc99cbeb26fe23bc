"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from decimal import Decimal

DEFAULT_SESSION_DAYS = 7
DEFAULT_PAGE_LIMIT = 25
MAX_PAGE_LIMIT = 500

DEFAULT_MONTHLY_FEE = Decimal("2500")

ALLOWED_ABSENCES_PER_MONTH = 3
BASE_ABSENCE_FINE = Decimal("500")
ABSENCE_HISTORY_LIMIT = 12
ABSENCE_HISTORY_PREVIEW = 6

# "feeType: all" on create expands to these
BUNDLED_FEE_TYPES = ("tuition", "exam")
