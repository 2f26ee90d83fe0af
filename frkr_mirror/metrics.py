"""
Prometheus metric definitions.

All metrics prefixed with frkr_mirror_ to avoid naming collisions
with the host application's own metrics.
"""

from prometheus_client import Counter

# --- Dispatch metrics ---
MIRRORED_COUNT = Counter(
    "frkr_mirror_requests_mirrored_total",
    "Requests handed to a transport for mirroring",
    ["transport"],
)

SKIPPED_COUNT = Counter(
    "frkr_mirror_requests_skipped_total",
    "Requests not mirrored",
    ["reason"],
)

# --- Delivery metrics ---
DELIVERY_FAILURES = Counter(
    "frkr_mirror_delivery_failures_total",
    "Mirrored requests the ingestion endpoint did not accept",
    ["transport"],
)

# --- Credentials ---
TOKEN_FETCHES = Counter(
    "frkr_mirror_token_fetches_total",
    "Client-credentials token fetches",
    ["outcome"],
)
