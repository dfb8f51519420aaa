import logging
import math
import uuid
from datetime import datetime, timezone


# Configure logging
def setup_logging(service_name: str, level: str = "INFO") -> logging.Logger:
    """Setup logging for the service and every module logger below it"""
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger


# ID generation
def generate_id(prefix: str = "") -> str:
    """Generate unique ID with optional prefix"""
    return f"{prefix}{uuid.uuid4().hex}"


def generate_document_id() -> str:
    """Generate the stable external id stored on every entity"""
    return generate_id()


# Time
def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Arithmetic
def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero"""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0
    return (current - previous) / previous * 100
