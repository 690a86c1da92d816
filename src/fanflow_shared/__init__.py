"""Shared domain code for the FanFlow webhook reconciliation service."""
