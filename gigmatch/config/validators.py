"""Soft checks on raw configuration that warrant a warning, not a failure."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    ranking = config_dict.get("ranking", {})
    if isinstance(ranking, dict) and ranking.get("enabled") is False:
        warning_messages.append(
            "Model ranking is disabled; all searches will use lexical scoring"
        )

    alerts = config_dict.get("alerts", {})
    if isinstance(alerts, dict):
        interval = alerts.get("sweep_interval")
        if isinstance(interval, str) and interval.strip().lower() in ["1m", "2m", "pt1m", "pt2m"]:
            warning_messages.append(
                f"Short sweep_interval ({interval}) re-evaluates every saved search very often"
            )

    dispatch = config_dict.get("dispatch", {})
    if isinstance(dispatch, dict):
        max_attempts = dispatch.get("max_attempts")
        if isinstance(max_attempts, int) and max_attempts == 1:
            warning_messages.append(
                "dispatch.max_attempts is 1; a single SMTP failure marks a notification failed"
            )

    email = config_dict.get("email", {})
    if isinstance(email, dict) and email.get("use_tls") is False:
        warning_messages.append("email.use_tls is false; credentials will be sent in clear text")

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
