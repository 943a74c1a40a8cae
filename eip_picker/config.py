import os
from typing import List, Tuple


DEFAULT_ACCEPTED_PREFIXES = (
    "43.204.6", "43.204.10", "43.204.11", "43.204.16", "43.204.17",
    "43.204.21", "43.205.28", "43.205.57", "43.205.71", "43.205.190",
)

# Regions offered by the browser form. Not enforced server side.
SUPPORTED_REGIONS = ("us-east-1", "us-west-2", "ap-south-1", "eu-west-1")


def _is_prefix(value: str) -> bool:
    octets = value.split(".")
    if len(octets) != 3:
        return False
    for octet in octets:
        if not octet.isdigit() or int(octet) > 255:
            return False
    return True


def parse_prefixes(raw: str) -> Tuple[str, ...]:
    """Parse a comma-separated list of three-octet prefixes.

    Invalid entries are dropped. Falls back to the built-in set when
    nothing usable is left.
    """
    prefixes: List[str] = []
    for part in raw.split(","):
        p = part.strip().rstrip(".")
        if not p:
            continue
        if _is_prefix(p):
            prefixes.append(p)
    return tuple(prefixes) or DEFAULT_ACCEPTED_PREFIXES


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ACCEPTED_PREFIXES = parse_prefixes(os.getenv("ACCEPTED_PREFIXES", ""))

TARGET_COUNT = int(os.getenv("TARGET_COUNT", "5"))
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "5"))
BATCH_PAUSE_SECONDS = float(os.getenv("BATCH_PAUSE_SECONDS", "60"))

# 0 means keep going until the quota is met
MAX_BATCHES = int(os.getenv("MAX_BATCHES", "0"))

# Release batch members left over once the quota is reached mid-batch
RELEASE_SURPLUS = _env_bool("RELEASE_SURPLUS")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
STATUS_TTL_SECONDS = int(os.getenv("STATUS_TTL_SECONDS", "86400"))

MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "10"))

# CORS
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")

# Optional API key
API_KEY = os.getenv("API_KEY", "")


def ip_prefix(ip_str: str) -> str:
    """Return the first three dotted octets of ip_str."""
    return ".".join(ip_str.split(".")[:3])


def ip_accepted(ip_str: str, prefixes=None) -> bool:
    """Return True if the first three octets of ip_str are an accepted prefix.
    Uses ACCEPTED_PREFIXES when prefixes is not given.
    """
    if prefixes is None:
        prefixes = ACCEPTED_PREFIXES
    if not ip_str:
        return False
    return ip_prefix(ip_str) in prefixes
