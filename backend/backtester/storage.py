"""
Custom Strategy Storage - JSON file based
Save and manage user-authored strategies
"""
import json
import logging
import os
import secrets
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from backtester.errors import CustomStrategyNotFoundError, InvalidParameterError
from backtester.models import CustomStrategy

logger = logging.getLogger(__name__)

_strategy_list = TypeAdapter(List[CustomStrategy])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return f"custom_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


class CustomStrategyStore:
    """Custom strategies persisted to a JSON array on disk.

    With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = Lock()
        self._strategies: List[CustomStrategy] = self._load()

    def _load(self) -> List[CustomStrategy]:
        if not self.path or not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return _strategy_list.validate_json(f.read())
        except (OSError, ValidationError) as e:
            logger.warning(f"⚠️ [CUSTOM_STRATEGY] Error loading strategies from {self.path}: {e}")
            return []

    def _save_all(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "wb") as f:
            f.write(_strategy_list.dump_json(self._strategies, indent=2))
        os.replace(tmp_path, self.path)

    def list(self) -> List[CustomStrategy]:
        with self._lock:
            return list(self._strategies)

    def get(self, strategy_id: str) -> Optional[CustomStrategy]:
        with self._lock:
            for strategy in self._strategies:
                if strategy.id == strategy_id:
                    return strategy
        return None

    def save(self, strategy: Union[CustomStrategy, Dict[str, Any]]) -> CustomStrategy:
        """Store a new strategy under a freshly generated id"""
        data = strategy.model_dump() if isinstance(strategy, CustomStrategy) else dict(strategy)
        now = _now()
        data.update(id=_new_id(), createdAt=now, updatedAt=now)
        new_strategy = CustomStrategy.model_validate(data)

        with self._lock:
            self._strategies.append(new_strategy)
            self._save_all()
        logger.info(f"[CUSTOM_STRATEGY] Saved new strategy: {new_strategy.id}")
        return new_strategy

    def update(self, strategy_id: str, updates: Dict[str, Any]) -> CustomStrategy:
        with self._lock:
            for idx, strategy in enumerate(self._strategies):
                if strategy.id == strategy_id:
                    data = strategy.model_dump()
                    data.update(updates)
                    data.update(id=strategy_id, createdAt=strategy.createdAt, updatedAt=_now())
                    updated = CustomStrategy.model_validate(data)
                    self._strategies[idx] = updated
                    self._save_all()
                    logger.info(f"[CUSTOM_STRATEGY] Updated strategy: {strategy_id}")
                    return updated
        raise CustomStrategyNotFoundError(f"Custom strategy not found: {strategy_id}")

    def delete(self, strategy_id: str) -> None:
        with self._lock:
            remaining = [s for s in self._strategies if s.id != strategy_id]
            if len(remaining) == len(self._strategies):
                raise CustomStrategyNotFoundError(f"Custom strategy not found: {strategy_id}")
            self._strategies = remaining
            self._save_all()
        logger.info(f"[CUSTOM_STRATEGY] Deleted strategy: {strategy_id}")

    def clear(self) -> None:
        with self._lock:
            self._strategies = []
            self._save_all()
        logger.info("[CUSTOM_STRATEGY] Cleared all strategies")

    def export_json(self) -> str:
        with self._lock:
            return _strategy_list.dump_json(self._strategies, indent=2).decode("utf-8")

    def import_json(self, text: str) -> int:
        """Replace all strategies with a JSON array of strategies"""
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidParameterError(f"Invalid JSON: {e}")
        if not isinstance(payload, list):
            raise InvalidParameterError("Invalid format: expected array")
        try:
            strategies = _strategy_list.validate_python(payload)
        except ValidationError as e:
            raise InvalidParameterError(f"Invalid strategy definition: {e}")

        with self._lock:
            self._strategies = strategies
            self._save_all()
        logger.info(f"[CUSTOM_STRATEGY] Imported {len(strategies)} strategies")
        return len(strategies)
