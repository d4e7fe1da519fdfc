"""
Validation utilities for Service Wizard Bot

Contains the field validators used by free-text wizard steps and the
value post-processors applied to accepted input.
"""

import re
from typing import Any, Dict, Callable, Tuple

from service_wizard.models import ValidatorTag


# ============================================================================
# Patterns and Messages
# ============================================================================

IP_PATTERN = re.compile(r'^[0-9]{1,3}(\.[0-9]{1,3}){3}$')
PORT_PATTERN = re.compile(r'^[+-]?[0-9]+$')

IP_ERROR_MESSAGE = "❌ Invalid IP address format. Please provide a valid IP (e.g., 192.168.1.100):"
PORT_ERROR_MESSAGE = "❌ Invalid port number. Please provide a number between 1 and 65535:"
TEXT_ERROR_MESSAGE = "❌ This field cannot be empty. Please try again:"

MIN_PORT = 1
MAX_PORT = 65535


# ============================================================================
# Validation Functions
# ============================================================================

def validate_ip(value: str) -> Tuple[bool, str]:
    """
    Validate a dotted-quad IPv4 address.

    Args:
        value: Raw user input

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not value or not IP_PATTERN.fullmatch(value):
        return False, IP_ERROR_MESSAGE

    if any(int(part) > 255 for part in value.split(".")):
        return False, IP_ERROR_MESSAGE

    return True, ""


def validate_port(value: str) -> Tuple[bool, str]:
    """
    Validate a TCP/UDP port number in [1, 65535].

    Args:
        value: Raw user input

    Returns:
        Tuple of (is_valid, error_message)
    """
    cleaned = (value or "").strip()
    if not PORT_PATTERN.fullmatch(cleaned):
        return False, PORT_ERROR_MESSAGE

    if not MIN_PORT <= int(cleaned) <= MAX_PORT:
        return False, PORT_ERROR_MESSAGE

    return True, ""


def validate_text(value: str) -> Tuple[bool, str]:
    """
    Validate that text is not blank.

    Args:
        value: Raw user input

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not value.strip():
        return False, TEXT_ERROR_MESSAGE

    return True, ""


VALIDATORS: Dict[ValidatorTag, Callable[[str], Tuple[bool, str]]] = {
    ValidatorTag.IP_ADDRESS: validate_ip,
    ValidatorTag.PORT_NUMBER: validate_port,
    ValidatorTag.NON_EMPTY_TEXT: validate_text,
}


def validate_field(tag: ValidatorTag, value: str) -> Tuple[bool, str]:
    """
    Run the validator registered for a tag.

    ValidatorTag.NONE accepts everything; it only appears on fixed-choice
    steps, which are never validated as text.
    """
    validator = VALIDATORS.get(tag)
    if validator is None:
        return True, ""
    return validator(value)


def coerce_value(tag: ValidatorTag, value: str) -> Any:
    """Typed value stored for an accepted input: ports as int, everything else as stripped text"""
    cleaned = value.strip()
    if tag == ValidatorTag.PORT_NUMBER:
        return int(cleaned)
    return cleaned


# ============================================================================
# Post-processing
# ============================================================================

def apply_domain_suffix(host: str, suffix: str) -> str:
    """
    Ensure a hostname ends with the given domain suffix exactly once.

    Args:
        host: Accepted hostname
        suffix: Domain suffix including the leading dot (e.g. '.yairlab')

    Returns:
        Hostname with the suffix appended unless it is already present
    """
    if host.endswith(suffix):
        return host
    return f"{host}{suffix}"
