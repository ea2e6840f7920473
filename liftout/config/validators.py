"""Soft checks on raw configuration that warn rather than fail."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Inspect the raw YAML mapping for settings that are legal but suspicious.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    messages = []

    interest = config_dict.get("interest") or {}
    if isinstance(interest, dict):
        expiry_days = interest.get("expiry_days")
        if isinstance(expiry_days, int) and expiry_days != 30:
            messages.append(
                f"interest.expiry_days is {expiry_days}; teams are told interest lapses after 30 days"
            )

    notifications = config_dict.get("notifications") or {}
    if isinstance(notifications, dict) and notifications.get("email_enabled") is False:
        messages.append("E-mail notifications are disabled; only in-app notifications will be recorded")

    anonymization = config_dict.get("anonymization") or {}
    if isinstance(anonymization, dict):
        overrides = anonymization.get("region_overrides") or {}
        if isinstance(overrides, dict):
            for city, region in overrides.items():
                if isinstance(region, str) and isinstance(city, str) and city.strip().lower() in region.lower():
                    messages.append(
                        f"Region override for '{city}' contains the city name and would leak it"
                    )

    return messages


def emit_warnings(messages: List[str]) -> None:
    """Emit each message through the warnings module."""
    for message in messages:
        warnings.warn(message, UserWarning, stacklevel=2)
