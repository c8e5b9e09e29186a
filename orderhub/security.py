import hmac
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class CredentialValidator:
    """
    Static shared-secret check against a configured allow-list.

    Fails closed: an empty key or an empty allow-list never validates.
    Neither the supplied key nor the configured keys are ever logged.
    """

    def __init__(self, valid_keys: Iterable[str]):
        self._valid_keys = tuple(k for k in (valid_keys or ()) if k)

    def validate(self, key: Optional[str]) -> bool:
        if not key or not key.strip():
            logger.warning("API key validation failed: empty or missing key")
            return False

        if not self._valid_keys:
            logger.error("No valid API keys configured")
            return False

        candidate = key.encode("utf-8")
        is_valid = False
        for valid in self._valid_keys:
            # compare against every key so timing does not depend on position
            if hmac.compare_digest(candidate, valid.encode("utf-8")):
                is_valid = True

        if is_valid:
            logger.info("API key validated")
        else:
            logger.warning("API key validation failed: invalid key")
        return is_valid

    def explain(self, key: Optional[str]) -> str:
        if not key or not key.strip():
            return "API key required"
        return "Invalid API key"
