"""Outbound webhook delivery service for the marketplace."""

__version__ = "0.1.0"
