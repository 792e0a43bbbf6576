"""
Token Utils
Format checks for GitHub access tokens. Tokens are never logged or stored.
"""
import re
from typing import Optional

from smart_builder.core.constants import TOKEN_PREFIXES

_AUTH_HEADER_RE = re.compile(r"^(?:token|bearer)\s+(\S+)$", re.I)


def is_valid_token_format(token: Optional[str]) -> bool:
    """Classic (ghp_) and fine-grained (github_pat_) personal access tokens only."""
    return isinstance(token, str) and token.startswith(TOKEN_PREFIXES)


def token_from_header(value: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: token <x>' style header."""
    if not value:
        return None
    match = _AUTH_HEADER_RE.match(value.strip())
    return match.group(1) if match else None


def mask_token(token: Optional[str]) -> str:
    if not token:
        return ""
    return f"{token[:4]}…{token[-4:]}" if len(token) > 12 else "****"
