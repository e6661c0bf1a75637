"""Hedera Health ID core: sealed patient QR codes and the document registry."""

__version__ = "0.1.0"
