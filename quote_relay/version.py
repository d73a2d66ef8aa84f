# quote_relay/version.py

SERVICE_NAME = "quote-relay"
SERVICE_VERSION = "0.3.0"


def service_version_payload() -> dict:
    """Used by /version endpoints."""
    return {
        "service": f"{SERVICE_NAME}:{SERVICE_VERSION}",
        "service_version": SERVICE_VERSION,
    }
