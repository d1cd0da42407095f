# =======================================================================================
# smartvisitor/utils/validators.py - Validation Helpers
# =======================================================================================
import re
from typing import Any

from .exceptions import InvalidIdentifierError

_MAC_HEX = re.compile(r"^[0-9A-F]{12}$")


class IdentifierValidator:
    """Normalizes and validates identifiers coming from operators and scanners."""

    @staticmethod
    def normalize_mac(mac: str) -> str:
        """
        Canonical scanner MAC: upper case, colon separated.

        Accepts 'f0:f5:bd:54:36:a8', 'F0-F5-BD-54-36-A8' and 'F0F5BD5436A8'.
        Anything that is not 12 hex digits is returned stripped and upper-cased
        so the lookup simply misses.
        """
        raw = (mac or "").strip().upper()
        compact = raw.replace(":", "").replace("-", "").replace(".", "")
        if not _MAC_HEX.match(compact):
            return raw
        return ":".join(compact[i:i + 2] for i in range(0, 12, 2))

    @staticmethod
    def require_id(value: Any, name: str) -> int:
        """Coerce a positive integer id or raise InvalidIdentifierError."""
        if isinstance(value, bool):
            raise InvalidIdentifierError(f"Invalid {name}: {value!r}")
        try:
            ident = int(value)
        except (TypeError, ValueError):
            raise InvalidIdentifierError(f"Invalid {name}: {value!r}")
        if ident <= 0:
            raise InvalidIdentifierError(f"Invalid {name}: {value!r}")
        return ident

    @staticmethod
    def require_tag(tag_id: str) -> str:
        tag = (tag_id or "").strip()
        if not tag:
            raise InvalidIdentifierError("Tag id must not be empty")
        if len(tag) > 255:
            raise InvalidIdentifierError("Tag id longer than 255 characters")
        return tag
