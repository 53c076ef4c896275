"""Scope policy: turns a requested scope string into the granted one."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

WILDCARD = "*"


def parse_scope(scope: str | None) -> frozenset[str]:
    """Split a space-delimited scope string into a set of scope names."""
    return frozenset((scope or "").split())


class ScopePolicy:
    """
    Pure scope filter configured with a catalog and a restricted subset.

    Parameters
    ----------
    catalog:
        Known scopes, in the order they are reported back to clients.
        Duplicates are collapsed, keeping the first occurrence.
    restricted:
        Scopes withheld from users whose email address is unverified.

    Raises
    ------
    ValueError
        If ``restricted`` names a scope outside ``catalog``.
    """

    __slots__ = ("catalog", "restricted")

    def __init__(self, catalog: Iterable[str], restricted: Iterable[str] = ()) -> None:
        self.catalog: tuple[str, ...] = tuple(
            dict.fromkeys(s.strip() for s in catalog if s and s.strip())
        )
        self.restricted: frozenset[str] = frozenset(s.strip() for s in restricted if s)
        unknown = self.restricted.difference(self.catalog)
        if unknown:
            raise ValueError(f"Restricted scopes not in catalog: {sorted(unknown)}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ScopePolicy:
        return cls(config["OAUTH_SCOPES"], config.get("OAUTH_RESTRICTED_SCOPES", ()))

    def effective_scope(self, requested: str | None, *, email_verified: bool) -> str:
        """
        Compute the granted scope string.

        ``"*"`` means the whole catalog. Unknown names are dropped silently,
        and unverified users lose every restricted scope. The result is
        deduplicated and space-joined in catalog order; it can be ``""``.

        :param requested: Raw ``scope`` parameter from the client.
        :param email_verified: Current verification state of the user.
        """
        requested = (requested or "").strip()
        if not requested:
            return ""

        if requested == WILDCARD:
            granted = set(self.catalog)
        else:
            granted = parse_scope(requested).intersection(self.catalog)

        if not email_verified:
            granted -= self.restricted

        return " ".join(s for s in self.catalog if s in granted)
