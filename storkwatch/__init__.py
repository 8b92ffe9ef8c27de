"""Stork oracle price-attestation validator agent."""

__version__ = "0.3.0"
