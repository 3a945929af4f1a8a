"""Normalisation and validation of user supplied labels, secrets and codes."""
import re
from typing import Optional

_LABEL_RE = re.compile(r"[a-z0-9_-]{2,32}")
_BASE32_RE = re.compile(r"[A-Z2-7]+=*")
_CODE_RE = re.compile(r"\d{6}")
_SECRET_STRIP_RE = re.compile(r"[\s-]+")


def normalize_label(value: Optional[str]) -> str:
    """Trim and lowercase a label."""
    return (value or '').strip().lower()


def normalize_secret(value: Optional[str]) -> str:
    """Uppercase a Base32 secret and drop whitespace and dashes.

    Authenticator setup pages usually show secrets grouped in blocks
    (``JBSW Y3DP ...``), so the separators are removed before validation.
    """
    return _SECRET_STRIP_RE.sub('', (value or '').upper())


def is_valid_label(value: str) -> bool:
    return bool(_LABEL_RE.fullmatch(value or ''))


def is_likely_base32(value: str) -> bool:
    return bool(_BASE32_RE.fullmatch(value or ''))


def is_valid_code_format(value: Optional[str]) -> bool:
    return bool(_CODE_RE.fullmatch((value or '').strip()))
