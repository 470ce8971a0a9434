"""Bridges to external capabilities (cryptography)."""
