"""Service catalog categories accepted by the provider_services table.

Legacy onboarding data carries free-text categories; anything outside this
set is stored under FALLBACK_CATEGORY.
"""

SERVICE_CATEGORIES = [
    "plumbing",
    "electrical",
    "cleaning",
    "carpentry",
    "painting",
    "gardening",
    "appliance-repair",
    "hvac",
    "roofing",
    "other",
]

FALLBACK_CATEGORY = "other"

PRICE_TYPES = ["fixed", "hourly", "quote"]

# Legacy data may only produce these; "quote" is set by providers themselves.
BACKFILL_PRICE_TYPES = ["fixed", "hourly"]
