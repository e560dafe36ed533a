"""Billing, payment allocation and metering engine for multi-tenant property management."""

__version__ = "0.1.0"
