import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _parse_hours(env_var: str, default: float) -> float:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = float(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid number of hours (got %r); defaulting to %.1f",
            env_var,
            raw_value,
            default,
        )
        return default

    if value <= 0:
        logger.warning("%s must be positive; defaulting to %.1f", env_var, default)
        return default

    return value


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

# Creator may cancel a match this long after it finished.
CANCEL_WINDOW_HOURS = _parse_hours("CANCEL_WINDOW_HOURS", 24.0)

# Participants have this long to approve or reject submitted scores.
CONFIRMATION_WINDOW_HOURS = _parse_hours("CONFIRMATION_WINDOW_HOURS", 24.0)

SCORE_SUBMISSION_RATE_LIMIT = (
    os.getenv("SCORE_SUBMISSION_RATE_LIMIT") or "30/minute"
).strip()
