"""
saslntlm Identity Splitting

Derives the NTLM domain and user from a credential's user name.
"""

from __future__ import annotations

from typing import Optional, Tuple

# Checked in this order; the first separator kind present wins.
DOMAIN_SEPARATORS = ("\\", "/")


def split_identity(user_name: str, domain: Optional[str] = None) -> Tuple[str, str]:
    """
    Split a combined identity into (domain, user).

    A non-empty ``domain`` is authoritative and ``user_name`` is returned
    untouched. Otherwise ``user_name`` is split at the first backslash,
    or failing that at the first forward slash. No trimming or case
    folding is done, and an empty user is returned as-is.

    Examples:
        split_identity("CORP\\\\bob") -> ("CORP", "bob")
        split_identity("CORP/bob") -> ("CORP", "bob")
        split_identity("bob", "CORP") -> ("CORP", "bob")
        split_identity("alice") -> ("", "alice")
    """
    if domain:
        return domain, user_name

    for separator in DOMAIN_SEPARATORS:
        index = user_name.find(separator)
        if index >= 0:
            return user_name[:index], user_name[index + 1 :]

    return "", user_name
