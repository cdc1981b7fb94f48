"""
PII (Personally Identifiable Information) handling for audit records

Audit rows never carry full emails, full IP addresses, unbounded user agents
or secrets in their metadata.
"""
import ipaddress
from typing import Any, Dict, Optional

USER_AGENT_MAX_LENGTH = 200
IP_ADDRESS_MAX_LENGTH = 64

REDACTED = "***REDACTED***"

# Metadata keys whose values are never persisted
SENSITIVE_METADATA_KEYS = (
    "password",
    "token",
    "accessCode",
    "secret",
    "apiKey",
    "authorization",
)


def mask_email(email: str) -> str:
    """
    Keep the domain plus the first and last character of the local part.

    "jane.doe@example.com" -> "j***e@example.com"
    Anything that is not exactly "local@domain" becomes "***".
    """
    parts = email.split("@")
    if len(parts) != 2:
        return "***"
    local, domain = parts
    return f"{local[:1]}***{local[-1:]}@{domain}"


def mask_ip(ip_address: str) -> str:
    """
    Keep the first four IPv6 groups or the first two IPv4 octets.

    Values that are not an IP address ("unknown" when no client address was
    found) carry nothing to mask and are returned unchanged, capped at the
    column width.
    """
    try:
        ipaddress.ip_address(ip_address)
    except ValueError:
        return ip_address[:IP_ADDRESS_MAX_LENGTH]

    if ":" in ip_address:
        return ":".join(ip_address.split(":")[:4]) + ":***"
    return ".".join(ip_address.split(".")[:2]) + ".***"


def truncate_user_agent(user_agent: str) -> str:
    return user_agent[:USER_AGENT_MAX_LENGTH]


def redact_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy with sensitive top-level keys replaced."""
    sanitized = dict(metadata)
    for key in SENSITIVE_METADATA_KEYS:
        if key in sanitized:
            sanitized[key] = REDACTED
    return sanitized


def sanitize_audit_fields(
    user_email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Apply every audit sanitization rule, leaving missing values as None."""
    return {
        "user_email": mask_email(user_email) if user_email else None,
        "ip_address": mask_ip(ip_address) if ip_address else None,
        "user_agent": truncate_user_agent(user_agent) if user_agent else None,
        "metadata": redact_metadata(metadata) if metadata else None,
    }
