"""Utility functions for BLE operations."""

import asyncio
from typing import Optional


async def _sleep(delay: float) -> None:
    """
    Suspend the caller for the given duration in seconds.

    Every protocol delay except the poll interval goes through here so tests
    can patch a single function.
    """
    await asyncio.sleep(delay)


def sanitize_uuid(uuid: Optional[str]) -> Optional[str]:
    """
    Normalize a characteristic or service UUID for lookups.

    Returns:
        The UUID lowercased with dashes and surrounding whitespace removed, or None for empty input.
    """
    if uuid is None:
        return None
    cleaned = str(uuid).strip().lower().replace("-", "")
    return cleaned or None


def name_matches(advertised_name: Optional[str], name_filter: str) -> bool:
    """Case-insensitive substring match on an advertised device name."""
    if not advertised_name or not name_filter:
        return False
    return name_filter.lower() in advertised_name.lower()
