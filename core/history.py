"""Improvement history persistence and session management."""
import json
import os
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from config.cycle_config import CycleConfig
from core.interfaces import HistoryStorage
from core.prompt_serializer import deserialize_prompt, has_user_template, serialize_prompt
from models.cycle import ImprovementHistory, RoundResult, SerializedRoundResult
from models.prompt import AgentPrompt, SerializedPrompt
from utils.error_handling import (
    ConcurrentModificationError,
    EvalError,
    FileReadError,
    FileWriteError,
    InvalidConfigError,
    SchemaValidationError,
)
from utils.logging_utils import get_logger

logger = get_logger()

__all__ = [
    "FileSystemStorage",
    "ImprovementSession",
    "SessionConfig",
    "create_session",
    "deserialize_prompt",
    "has_user_template",
    "load_history",
    "resume_session",
    "save_history",
    "serialize_prompt",
]

REQUIRED_HISTORY_FIELDS = ("sessionId", "startedAt", "initialPrompt", "currentPrompt", "rounds", "totalCost")


class FileSystemStorage:
    """HistoryStorage backed by the local filesystem."""

    def read_file(self, path: str) -> str:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def write_file(self, path: str, content: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def mkdir(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)


default_storage = FileSystemStorage()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def save_history(
    history: ImprovementHistory,
    path: str,
    storage: Optional[HistoryStorage] = None
):
    """
    Write history to a JSON file, creating parent directories if needed.

    Raises:
        FileWriteError: the write failed
    """
    storage = storage or default_storage
    try:
        directory = os.path.dirname(path)
        if directory and not storage.exists(directory):
            storage.mkdir(directory)
        storage.write_file(path, json.dumps(history.to_json_dict(), indent=2))
    except EvalError:
        raise
    except Exception as e:
        raise FileWriteError.wrap(e, context={"path": path})


def _validate_history_schema(data: Any):
    if not isinstance(data, dict):
        raise SchemaValidationError("Invalid history: not an object")

    schema_version = data.get("schemaVersion")
    if schema_version != CycleConfig.SCHEMA_VERSION:
        raise SchemaValidationError(
            f"Unsupported schema version: {schema_version}",
            context={"schema_version": schema_version}
        )

    for field_name in REQUIRED_HISTORY_FIELDS:
        if field_name not in data:
            raise SchemaValidationError(
                f'Invalid history: missing field "{field_name}"',
                context={"missing_field": field_name}
            )


def load_history(path: str, storage: Optional[HistoryStorage] = None) -> ImprovementHistory:
    """
    Load and validate a history file.

    Raises:
        FileReadError: file missing, unreadable or not JSON
        SchemaValidationError: wrong schema version or malformed content
    """
    storage = storage or default_storage
    try:
        if not storage.exists(path):
            raise FileReadError(f"History file not found: {path}", context={"path": path})
        data = json.loads(storage.read_file(path))
    except EvalError:
        raise
    except Exception as e:
        raise FileReadError.wrap(e, context={"path": path})

    _validate_history_schema(data)

    try:
        return ImprovementHistory.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(
            f"Invalid history: {e.error_count()} validation error(s)",
            context={"path": path, "errors": e.errors(include_url=False)},
            cause=e
        )


@dataclass
class SessionConfig:
    """Where and how a session persists its history."""
    path: Optional[str] = None
    auto_save: bool = False
    storage: Optional[HistoryStorage] = None
    on_auto_save_error: Optional[Callable[[Exception], None]] = None


class ImprovementSession:
    """
    Owner of one run's ImprovementHistory.

    Every mutation replaces the history with an updated copy. Saves go through
    a single-worker executor so writes land in the order they were requested,
    each writing the history as it was when the save was requested.
    """

    def __init__(self, history: ImprovementHistory, config: Optional[SessionConfig] = None):
        self._history = history
        self.config = config or SessionConfig()
        self._storage = self.config.storage or default_storage
        self._mutation_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []

    @property
    def session_id(self) -> str:
        return self._history.session_id

    @property
    def history(self) -> ImprovementHistory:
        """A copy of the current history; changing it does not affect the session."""
        return self._history.model_copy(deep=True)

    @property
    def can_save(self) -> bool:
        return self.config.path is not None

    @property
    def is_completed(self) -> bool:
        return self._history.completed_at is not None

    def _begin_mutation(self):
        if not self._mutation_lock.acquire(blocking=False):
            raise ConcurrentModificationError(
                "Session is being updated",
                context={"session_id": self.session_id}
            )

    def add_round(self, result: RoundResult, updated_prompt: SerializedPrompt):
        """
        Append a round and make ``updated_prompt`` the current prompt.

        Raises:
            ConcurrentModificationError: another mutation is in progress
            InvalidConfigError: the session is already completed
        """
        self._begin_mutation()
        try:
            if self.is_completed:
                raise InvalidConfigError(
                    "Cannot add round to completed session",
                    context={"session_id": self.session_id}
                )
            self._history = self._history.model_copy(update={
                "current_prompt": updated_prompt,
                "rounds": [*self._history.rounds, SerializedRoundResult.from_round(result)],
                "total_cost": self._history.total_cost + result.cost.total,
            })
        finally:
            self._mutation_lock.release()

        logger.debug(
            "Round recorded",
            session_id=self.session_id,
            round=result.round,
            prompt_version=updated_prompt.version
        )
        self._maybe_auto_save()

    def complete(self, termination_reason: str):
        """Mark the run finished; no further rounds can be added."""
        self._begin_mutation()
        try:
            self._history = self._history.model_copy(update={
                "completed_at": _utc_now(),
                "termination_reason": termination_reason,
            })
        finally:
            self._mutation_lock.release()

        logger.info("Session completed", session_id=self.session_id, reason=termination_reason)
        self._maybe_auto_save()

    def save(self):
        """
        Save the history now and wait for the write to finish.

        Raises:
            InvalidConfigError: no path configured
            FileWriteError: the write failed
        """
        self._submit(self._write).result()

    def flush(self):
        """Wait for every queued save to finish."""
        pending, self._pending = self._pending, []
        wait(pending)

    def close(self):
        """Flush pending saves and stop the write queue."""
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _maybe_auto_save(self):
        if self.config.auto_save and self.can_save:
            self._submit(self._write_reporting_errors)

    def _submit(self, task: Callable[[ImprovementHistory], None]) -> Future:
        if not self.can_save:
            raise InvalidConfigError(
                "Cannot save: no path configured",
                context={"session_id": self.session_id}
            )
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="history-save")

        snapshot = self._history.model_copy(deep=True)
        future = self._executor.submit(task, snapshot)
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(future)
        return future

    def _write(self, snapshot: ImprovementHistory):
        save_history(snapshot, self.config.path, self._storage)

    def _write_reporting_errors(self, snapshot: ImprovementHistory):
        try:
            self._write(snapshot)
        except Exception as e:
            if self.config.on_auto_save_error is not None:
                self.config.on_auto_save_error(e)
            else:
                logger.error(
                    "Auto-save failed",
                    session_id=self.session_id,
                    path=self.config.path,
                    error=str(e)
                )


def create_session(initial_prompt: AgentPrompt, config: Optional[SessionConfig] = None) -> ImprovementSession:
    """
    Start a fresh session for a prompt.

    Raises:
        PromptInvalidFormatError: prompt has no userTemplate
    """
    serialized = serialize_prompt(initial_prompt)
    history = ImprovementHistory(
        session_id=str(uuid.uuid4()),
        started_at=_utc_now(),
        initial_prompt=serialized,
        current_prompt=serialized,
    )
    return ImprovementSession(history, config)


def resume_session(path: str, config: Optional[SessionConfig] = None) -> ImprovementSession:
    """Reopen a saved run so new rounds can be appended; the session saves back to ``path``."""
    history = load_history(path, config.storage if config else None)
    reopened = history.model_copy(update={"completed_at": None, "termination_reason": None})
    logger.info(
        "Resuming session",
        session_id=reopened.session_id,
        rounds=len(reopened.rounds),
        path=path
    )
    return ImprovementSession(reopened, replace(config or SessionConfig(), path=path))
