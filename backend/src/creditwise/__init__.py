"""Creditwise - referral rewards and subscription billing reconciliation."""

__version__ = "1.0.0"
