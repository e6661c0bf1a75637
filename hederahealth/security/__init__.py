"""Security package initialization.

The :mod:`hederahealth.security` package contains the AES‑GCM helpers used
to seal QR payloads.  The public API is intentionally minimal to keep the
top‑level namespace clean.
"""

from .crypto import decrypt_data, derive_key, encrypt_data, load_key, seal, unseal
