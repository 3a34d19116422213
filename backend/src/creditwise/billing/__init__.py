"""Billing: plans, the local subscription mirror and Stripe reconciliation."""
