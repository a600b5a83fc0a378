"""Utility helpers."""

from .atomic_io import read_json, write_json_atomic
from .encryption import CredentialEncryption, get_encryption, reset_encryption
from .masking import mask_email

__all__ = [
    "read_json",
    "write_json_atomic",
    "CredentialEncryption",
    "get_encryption",
    "reset_encryption",
    "mask_email",
]
