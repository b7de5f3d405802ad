"""
Answer capture: one UserAnswer row per (session, question), upserted in the background.

Writes go through a single worker so answers are persisted in the order they
were chosen. flush() is the barrier the session engine waits on before it
aggregates results.
"""
import logging
import threading
from collections import defaultdict
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Tuple

from engine import CHOICES
from tryout.database import DatabaseClient
from tryout.errors import RemoteOperationFailure, ValidationError

logger = logging.getLogger(__name__)

ANSWER_CONFLICT_KEY = "session_id,question_id"


def build_answer_row(session: Dict, question: Dict, choice: str, elapsed_seconds: int) -> Dict:
    return {
        "session_id": session["id"],
        "question_id": question["id"],
        "user_answer": choice,
        "is_correct": choice == question.get("correct_answer"),
        "time_spent_seconds": max(0, int(elapsed_seconds)),
    }


class AnswerRecorder:
    """Records answer selections and tracks the writes still in flight per session."""

    def __init__(self, db: DatabaseClient, executor: Optional[Executor] = None):
        self.store = db.entity("UserAnswer")
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="answer-writer")
        self._lock = threading.Lock()
        self._pending: Dict[str, List[Tuple[str, Future]]] = defaultdict(list)
        self._choices: Dict[str, Dict[str, str]] = defaultdict(dict)
        # Newest write per (session_id, question_id); older failures must not undo a newer choice
        self._latest: Dict[Tuple[str, str], Future] = {}
        self._failed: Dict[str, List[str]] = defaultdict(list)

    def record_answer(self, session: Dict, question: Dict, choice: str, elapsed_seconds: int) -> Dict:
        """
        Record (or replace) the answer to `question` in `session`.

        Args:
            session: TryoutSession row; must be in progress
            question: Question row; correctness is checked against correct_answer
            choice: one of A-E
            elapsed_seconds: time on the question when the choice was made

        Returns:
            The UserAnswer payload that was queued for upsert
        """
        if session.get("status") != "in_progress":
            raise ValidationError(f"Session {session.get('id')} is not in progress", field="session")
        if choice not in CHOICES:
            raise ValidationError(f"Answer must be one of {', '.join(CHOICES)}", field="user_answer")

        row = build_answer_row(session, question, choice, elapsed_seconds)
        session_id = str(session["id"])
        question_id = str(question["id"])
        with self._lock:
            self._choices[session_id][question_id] = choice
            future = self._executor.submit(self._write, row)
            self._pending[session_id].append((question_id, future))
            self._latest[(session_id, question_id)] = future
        # Registered outside the lock: an already finished future runs the callback right here
        future.add_done_callback(lambda f: self._written(session_id, question_id, f))
        logger.debug("Queued answer %s for question %s (%ss)", choice, question["id"], row["time_spent_seconds"])
        return row

    def _write(self, row: Dict) -> Dict:
        return self.store.upsert(row, on_conflict=ANSWER_CONFLICT_KEY)

    def _written(self, session_id: str, question_id: str, future: Future) -> None:
        """Roll the local choice back when the newest write for the question was rejected."""
        rejected = not future.cancelled() and future.exception() is not None
        with self._lock:
            if self._latest.get((session_id, question_id)) is not future:
                return
            del self._latest[(session_id, question_id)]
            if not rejected:
                return
            self._choices[session_id].pop(question_id, None)
            self._failed[session_id].append(question_id)
        logger.warning("Answer for question %s not saved; choice cleared (session %s)", question_id, session_id)

    def failed(self, session_id) -> List[str]:
        """
        Question ids whose answer was rejected since the last call.

        Their choice has already been removed from answered(), so the
        question shows as unanswered and can be selected again.
        """
        with self._lock:
            return self._failed.pop(str(session_id), [])

    def flush(self, session_id, timeout: Optional[float] = None) -> List[str]:
        """
        Wait for every queued write of the session.

        Returns:
            Question ids whose write failed (empty when all answers are persisted)
        """
        session_id = str(session_id)
        with self._lock:
            pending = self._pending.pop(session_id, [])
        if not pending:
            return []
        _, not_done = wait([future for _, future in pending], timeout=timeout)
        failed = []
        for question_id, future in pending:
            if future in not_done:
                logger.error("Answer write for question %s still pending (session %s)", question_id, session_id)
                failed.append(question_id)
                continue
            exc = future.exception()
            if exc is None:
                continue
            if isinstance(exc, RemoteOperationFailure):
                logger.error("Answer write failed for question %s: %s", question_id, exc.message)
            else:
                logger.error("Answer write failed for question %s: %s", question_id, exc)
            failed.append(question_id)
        return failed

    def answered(self, session_id) -> Dict[str, str]:
        """{question_id: choice} as selected in this process."""
        with self._lock:
            return dict(self._choices.get(str(session_id), {}))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
