"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

# Area wildcard: a user holding it sees every area, including ones created later.
ALL_AREAS = "ALL"
# Nationality wildcard for a user's handled-nationality setting.
ALL_NATIONALITIES = "ALL"

# Day multipliers used by the payable-day total.
NORMAL_DAY_RATE = 1.0
OVERTIME_NORMAL_RATE = 0.5
OVERTIME_HOLIDAY_RATE = 1.0
OVERTIME_FESTIVAL_RATE = 1.0

# Presentation-layer caps for entry forms (not engine invariants).
MAX_OVERTIME_DAYS = 31
MAX_FESTIVAL_DAYS = 10

DEFAULT_AUDIT_LOG_LIMIT = 100
MONEY_DECIMALS = 3

# A record past any of these figures is flagged for review in period reports.
ANOMALY_TOTAL_DAYS = 30
ANOMALY_OVERTIME_NORMAL_DAYS = 15
ANOMALY_OVERTIME_HOLIDAY_DAYS = 10
