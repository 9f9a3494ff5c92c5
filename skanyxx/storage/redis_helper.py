"""
Redis persistence for investigations.
Stores the active investigation and the history list as JSON documents.
"""

import json
import logging
from typing import List, Optional

import redis
from pydantic import ValidationError

from ..models.investigation import Investigation

logger = logging.getLogger(__name__)

ACTIVE_INVESTIGATION_KEY = "skanyxx:active-investigation"
INVESTIGATION_HISTORY_KEY = "skanyxx:investigation-history"


class InvestigationRepository:
    """Helper for investigation Redis operations. Without a client every call is a no-op."""

    def __init__(self, redis_client=None):
        self.redis_client = redis_client

    @classmethod
    def from_url(cls, redis_url: Optional[str]) -> "InvestigationRepository":
        if not redis_url:
            return cls()
        return cls(redis.from_url(redis_url))

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def load_active(self) -> Optional[Investigation]:
        """Get the saved active investigation, if any."""
        if not self.redis_client:
            return None

        try:
            raw = self.redis_client.get(ACTIVE_INVESTIGATION_KEY)
            if not raw:
                return None
            investigation = Investigation.model_validate_json(raw)
            logger.info(f"Restored active investigation {investigation.id} from Redis")
            return investigation
        except (redis.RedisError, ValidationError, ValueError) as e:
            logger.error(f"Error loading active investigation from Redis: {e}")
            return None

    def save_active(self, investigation: Optional[Investigation]) -> bool:
        """Store the active investigation, or remove the key when there is none."""
        if not self.redis_client:
            return False

        try:
            if investigation is None:
                self.redis_client.delete(ACTIVE_INVESTIGATION_KEY)
            else:
                self.redis_client.set(ACTIVE_INVESTIGATION_KEY, investigation.model_dump_json())
            return True
        except redis.RedisError as e:
            logger.error(f"Error storing active investigation in Redis: {e}")
            return False

    def load_history(self) -> List[Investigation]:
        if not self.redis_client:
            return []

        try:
            raw = self.redis_client.get(INVESTIGATION_HISTORY_KEY)
            if not raw:
                return []
            history = [Investigation.model_validate(item) for item in json.loads(raw)]
            logger.info(f"Restored {len(history)} investigation(s) from Redis")
            return history
        except (redis.RedisError, ValidationError, ValueError) as e:
            logger.error(f"Error loading investigation history from Redis: {e}")
            return []

    def save_history(self, history: List[Investigation]) -> bool:
        if not self.redis_client:
            return False

        try:
            payload = json.dumps([inv.model_dump(mode="json") for inv in history])
            self.redis_client.set(INVESTIGATION_HISTORY_KEY, payload)
            return True
        except redis.RedisError as e:
            logger.error(f"Error storing investigation history in Redis: {e}")
            return False
