"""Wallet (verifiable credential) login broker."""

__version__ = "0.1.0"
