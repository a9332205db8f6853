"""
Constants for the YDB ledger transfer workload.

Seeding and the work loop both rely on these values, so they must remain
consistent between initialization and workload execution.
"""

# Table name inside the prefix folder
ACCOUNT_TABLE = "account"

# Number of accounts seeded and sampled for transfers
DEFAULT_ACCOUNTS = 1000

# Balance every account starts with
INITIAL_BALANCE = 10000

# Rows per UPSERT while seeding
SEED_BATCH_SIZE = 500

# Precision of the balance column, Decimal(22, 9)
BALANCE_PRECISION = 22
BALANCE_SCALE = 9

# Delay between two transfers, seconds
TICK_INTERVAL = 0.1

# Upper bound on a single transfer including all retries, seconds
TRANSFER_TIMEOUT = 1.0

# Transfer amounts are drawn from [0, MAX_AMOUNT)
MAX_AMOUNT = 100

# Number of leading identifier characters shown in log lines
ID_DISPLAY_LENGTH = 8
