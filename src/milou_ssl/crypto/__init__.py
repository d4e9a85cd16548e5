"""Cryptographic primitives behind a narrow provider interface."""

from milou_ssl.crypto.provider import CryptographyProvider, CryptoProvider

__all__ = ["CryptoProvider", "CryptographyProvider"]
