"""Logging, metrics and operational HTTP endpoints."""
