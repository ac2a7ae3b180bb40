# FILE: attempt_engine/services/attempt_store.py
"""
Attempt store backed by append-only JSONL files

Every write appends the full new version of the record; on read the last
version of each attempt/response wins. Several processes may share one
ATTEMPTS_DIR: each read re-syncs the relevant log and each write re-syncs,
checks and appends under one directory-wide file lock, so the
status-conditioned update has a single winner across workers.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from filelock import FileLock

from attempt_engine.config import get_settings
from attempt_engine.models.attempts import Attempt, AttemptStatus, Response
from attempt_engine.services.memory_store import InMemoryAttemptRepository

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 10.0


class JsonlAttemptRepository(InMemoryAttemptRepository):
    """Attempt repository persisted under ATTEMPTS_DIR"""

    def __init__(self, attempts_dir: Optional[str] = None, lock_timeout: float = LOCK_TIMEOUT_SECONDS):
        super().__init__()
        settings = get_settings()
        self.attempts_dir = Path(attempts_dir or settings.attempts_dir)
        self.attempt_log_dir = self.attempts_dir / "attempts"
        self.response_log_dir = self.attempts_dir / "responses"
        self.attempt_log_dir.mkdir(parents=True, exist_ok=True)
        self.response_log_dir.mkdir(parents=True, exist_ok=True)
        self._file_lock = FileLock(str(self.attempts_dir / ".attempts.lock"), timeout=lock_timeout)
        self._load()

    def _load(self):
        """Rebuild the in-memory view from the logs"""
        with self._lock, self._file_lock:
            self._sync_attempts()
            for log_file in sorted(self.response_log_dir.glob("*.jsonl")):
                self._sync_responses(log_file.stem)

        logger.info(
            f"Loaded {len(self._attempts)} attempts and {len(self._responses)} responses "
            f"from {self.attempts_dir}"
        )

    def _read_lines(self, path: Path) -> List[Dict[str, Any]]:
        records = []
        if not path.exists():
            return records
        with open(path, 'r', encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    # A torn final line from a crash mid-append
                    logger.warning(f"Skipping unreadable line {line_no} in {path}")
        return records

    def _sync_attempts(self, activity_id: Optional[str] = None):
        """Refresh attempts from one activity log, or from all of them"""
        if activity_id is not None:
            log_files = [self.attempt_log_dir / f"{activity_id}.jsonl"]
        else:
            log_files = sorted(self.attempt_log_dir.glob("*.jsonl"))

        for log_file in log_files:
            for record in self._read_lines(log_file):
                attempt = Attempt.model_validate(record)
                self._attempts[attempt.id] = attempt

    def _sync_responses(self, attempt_id: str):
        for record in self._read_lines(self.response_log_dir / f"{attempt_id}.jsonl"):
            response = Response.model_validate(record)
            self._responses[(response.attempt_id, response.question_id)] = response

    def _sync_attempt(self, attempt_id: str):
        known = self._attempts.get(attempt_id)
        # Unknown ids may have been created by another process
        self._sync_attempts(known.activity_id if known is not None else None)

    def _append(self, path: Path, payload: Dict[str, Any]):
        with open(path, 'a', encoding="utf-8") as f:
            f.write(json.dumps(payload) + '\n')

    def _append_attempt(self, attempt: Attempt):
        self._append(
            self.attempt_log_dir / f"{attempt.activity_id}.jsonl",
            attempt.model_dump(mode="json"),
        )

    def _append_response(self, response: Response):
        self._append(
            self.response_log_dir / f"{response.attempt_id}.jsonl",
            response.model_dump(mode="json"),
        )

    # Reads

    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        with self._lock, self._file_lock:
            self._sync_attempt(attempt_id)
            return super().get_attempt(attempt_id)

    def find_in_progress(self, user_id: str, activity_id: str) -> Optional[Attempt]:
        with self._lock, self._file_lock:
            self._sync_attempts(activity_id)
            return super().find_in_progress(user_id, activity_id)

    def count_completed(self, user_id: str, activity_id: str) -> int:
        with self._lock, self._file_lock:
            self._sync_attempts(activity_id)
            return super().count_completed(user_id, activity_id)

    def list_attempts(self, user_id: str, activity_id: str) -> List[Attempt]:
        with self._lock, self._file_lock:
            self._sync_attempts(activity_id)
            return super().list_attempts(user_id, activity_id)

    def list_completed(self, activity_id: str) -> List[Attempt]:
        with self._lock, self._file_lock:
            self._sync_attempts(activity_id)
            return super().list_completed(activity_id)

    def get_responses(self, attempt_id: str) -> List[Response]:
        with self._lock, self._file_lock:
            self._sync_responses(attempt_id)
            return super().get_responses(attempt_id)

    # Writes

    def insert_attempt(self, attempt: Attempt) -> bool:
        with self._lock, self._file_lock:
            if not super().insert_attempt(attempt):
                return False
            try:
                self._append_attempt(attempt)
            except OSError:
                del self._attempts[attempt.id]
                raise
        logger.debug(f"Inserted attempt: {attempt.id}")
        return True

    def update_attempt(self, attempt: Attempt, expected_status: AttemptStatus) -> bool:
        with self._lock, self._file_lock:
            self._sync_attempts(attempt.activity_id)
            previous = self._attempts.get(attempt.id)
            if not super().update_attempt(attempt, expected_status):
                return False
            try:
                self._append_attempt(attempt)
            except OSError:
                # Keep memory and disk in agreement
                self._attempts[attempt.id] = previous
                raise
        return True

    def upsert_response(self, response: Response) -> Response:
        key = (response.attempt_id, response.question_id)
        with self._lock, self._file_lock:
            self._sync_responses(response.attempt_id)
            previous = self._responses.get(key)
            stored = super().upsert_response(response)
            try:
                self._append_response(stored)
            except OSError:
                if previous is None:
                    del self._responses[key]
                else:
                    self._responses[key] = previous
                raise
        return stored

    def mark_response(self, attempt_id: str, question_id: str, is_correct: bool) -> None:
        key = (attempt_id, question_id)
        with self._lock, self._file_lock:
            self._sync_responses(attempt_id)
            previous = self._responses.get(key)
            super().mark_response(attempt_id, question_id, is_correct)
            response = self._responses.get(key)
            if response is None:
                return
            try:
                self._append_response(response)
            except OSError:
                self._responses[key] = previous
                raise
