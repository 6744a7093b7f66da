"""Helpers for contract address handling."""

from __future__ import annotations

from collections.abc import Iterable

from .constants import ZERO_ADDRESS


def normalise_address(address: str | None) -> str:
    return (address or "").strip().lower()


def is_sentinel(address: str | None) -> bool:
    """Return ``True`` for empty values and the all-zero placeholder address."""

    addr = normalise_address(address)
    if not addr:
        return True
    if addr == ZERO_ADDRESS:
        return True
    # tolerate short-hand zero addresses such as "0x0"
    return addr.startswith("0x") and set(addr[2:]) <= {"0"}


def usable_addresses(addresses: Iterable[str | None]) -> list[str]:
    """Drop sentinel entries and case-insensitive duplicates, keeping order."""

    seen: set[str] = set()
    out: list[str] = []
    for address in addresses:
        if is_sentinel(address):
            continue
        key = normalise_address(address)
        if key in seen:
            continue
        seen.add(key)
        out.append(str(address).strip())
    return out


__all__ = ["normalise_address", "is_sentinel", "usable_addresses"]
