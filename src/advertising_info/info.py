"""
AdvertisingInfo record - the value cached by the provider.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AdvertisingInfo:
    """Advertising identifier plus the user's limit-ad-tracking opt-out."""

    advertising_id: str = ""
    limit_ad_tracking_enabled: bool = False

    def is_valid(self) -> bool:
        """An empty identifier means no identifier."""
        return bool(self.advertising_id)


# Returned when no strategy could supply an identifier
INVALID_ADVERTISING_INFO = AdvertisingInfo("", False)


def is_info_valid(info: AdvertisingInfo | None) -> bool:
    return info is not None and info.is_valid()
