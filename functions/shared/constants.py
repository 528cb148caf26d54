"""
Shared constants for Daygo billing.
"""

# Tier configuration
FREE_TIER = "free"
PAID_TIERS = ("pro", "team")
TIERS = (FREE_TIER,) + PAID_TIERS

# Tier ordering for upgrade validation
TIER_ORDER = {"free": 0, "pro": 1, "team": 2}

# Feature limits per tier. None means unlimited.
TIER_LIMITS = {
    "free": {
        "max_journal_entries": 100,
        "max_templates": 5,
        "ai_features": False,
        "advanced_search": False,
        "advanced_export": False,
        "priority_support": False,
        "shared_templates": False,
        "collaborative_journaling": False,
    },
    "pro": {
        "max_journal_entries": None,
        "max_templates": None,
        "ai_features": True,
        "advanced_search": True,
        "advanced_export": True,
        "priority_support": True,
        "shared_templates": True,
        "collaborative_journaling": False,
    },
    "team": {
        "max_journal_entries": None,
        "max_templates": None,
        "ai_features": True,
        "advanced_search": True,
        "advanced_export": True,
        "priority_support": True,
        "shared_templates": True,
        "collaborative_journaling": True,
    },
}

# Tier assumed for an active subscription that carries no tier metadata
DEFAULT_PAID_TIER = "pro"

# Stripe subscription status that keeps a paid tier
ACTIVE_STATUS = "active"

# Status labels written when no Stripe subscription backs the tier
STATUS_NO_SUBSCRIPTION = "no_subscription"
STATUS_NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"

# Stripe metadata keys stamped at checkout
METADATA_USER_ID = "userId"
METADATA_TIER = "tier"

# Audit rows for webhook deliveries expire after this many days
BILLING_EVENT_TTL_DAYS = 90

# DynamoDB throttling error codes
THROTTLING_ERRORS = (
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ThrottlingException",
    "InternalServerError",
)
