"""Domain enumerations for the ManxHive marketplace.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class Plan(str, Enum):
    """Seller subscription tier. Unknown values are treated as STANDARD."""

    STANDARD = "standard"
    PREMIUM = "premium"
    PRO = "pro"


class EnquiryStatus(str, Enum):
    """Buyer enquiry status as set by intake."""

    OPEN = "open"
    CLOSED = "closed"


class CreditPack(str, Enum):
    """Purchasable one-off credit bundles."""

    CREDITS_10 = "credits_10"
    CREDITS_50 = "credits_50"
