"""FastAPI application for the FanFlow webhook reconciliation service."""
