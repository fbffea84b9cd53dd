import os

# Paillier modulus size used when a party's primes are sampled rather than supplied.
DEFAULT_MODULUS_BITS = 2048
MIN_MODULUS_BITS = 16

# Upper bound on draws when sampling r coprime to n during encryption.
MAX_COPRIME_RETRIES = 1000

# Currency amounts are encrypted as integer minor units (cents).
MINOR_UNITS_PER_MAJOR = 100
TOLERANCE_MINOR_UNITS = 1

# Fixed prime pairs, one per company, for small reproducible ledgers.
PRESET_PRIME_PAIRS = [
    (1009, 1013),
    (1019, 1021),
    (1031, 1033),
    (1039, 1049),
    (1051, 1061),
    (1063, 1069),
    (1087, 1091),
    (1093, 1097),
]

SELF_TEST_VALUE = 12345

TRANSACTION_ID_TAG = b"homoledger/transaction"

LOG_LEVEL = os.environ.get("HOMOLEDGER_LOG_LEVEL", "WARNING").upper()
