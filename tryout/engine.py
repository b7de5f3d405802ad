"""
Tryout Engine: session lifecycle, navigation, answer capture and completion.
Ties the countdown, the answer recorder and the scoring engine to one TryoutSession.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from engine import DEFAULT_DURATION_MINUTES, MAX_QUESTIONS_PER_PACKAGE
from tryout.answers import AnswerRecorder
from tryout.config import FORCED_FINISH_DELAY_SECONDS, QUESTION_TIMER_POLICY
from tryout.countdown import EXPIRED, Countdown, QuestionTimer
from tryout.database import DatabaseClient
from tryout.errors import NotFoundError, RemoteOperationFailure, ValidationError
from tryout.scoring import build_tag_stats_rows, compute_results

logger = logging.getLogger(__name__)

IN_PROGRESS = "in_progress"
FINISHING = "finishing"
COMPLETED = "completed"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TryoutEngine:
    """Manages a single tryout session from start to completion or timeout."""

    def __init__(
        self,
        db: DatabaseClient,
        recorder: Optional[AnswerRecorder] = None,
        timer_policy: str = QUESTION_TIMER_POLICY,
        forced_finish_delay: float = FORCED_FINISH_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            db: entity store client
            recorder: answer recorder (one with a background writer is created if omitted)
            timer_policy: "reset" or "accumulate" for revisited questions
            forced_finish_delay: seconds between expiry and forced completion
            clock: monotonic seconds, injectable for simulated time
        """
        self.db = db
        self.recorder = recorder or AnswerRecorder(db)
        self.clock = clock
        self.forced_finish_delay = forced_finish_delay
        self.countdown = Countdown(on_expire=self._on_time_up, clock=clock)
        self.question_timer = QuestionTimer(policy=timer_policy, clock=clock)

        self.package: Optional[Dict] = None
        self.questions: List[Dict] = []
        self.session: Optional[Dict] = None
        self.current_index = 0
        self.timed_out = False
        self.result: Optional[Dict] = None

        self._state: Optional[str] = None
        self._finish_lock = threading.Lock()
        self._tag_stats_written = False
        self._forced_attempted = False

    # ============= Lifecycle =============

    def start_session(self, user_id, package_id) -> Dict:
        """
        Create the TryoutSession and start the countdown.

        Raises:
            NotFoundError: package missing or without questions
            RemoteOperationFailure: any store call failed
        """
        if self.session is not None:
            raise ValidationError("Session already started", field="session")

        package = self.db.entity("QuestionPackage").get(package_id)
        questions = self.db.entity("Question").filter(
            {"package_id": package_id}, order="question_number", limit=MAX_QUESTIONS_PER_PACKAGE
        )
        if not questions:
            raise NotFoundError("QuestionPackage", package_id, "Package has no questions")

        session = self.db.entity("TryoutSession").create({
            "user_id": str(user_id),
            "package_id": str(package_id),
            "start_time": utc_now_iso(),
            "status": IN_PROGRESS,
        })

        self.package = package
        self.questions = questions
        self.session = session
        self._state = IN_PROGRESS
        duration = package.get("duration_minutes") or DEFAULT_DURATION_MINUTES
        self.countdown.start(int(duration) * 60)
        self.go_to(0)
        logger.info("Session %s started: package=%s, %d questions, %d min", session["id"], package_id, len(questions), duration)
        return session

    def finish_session(self, forced: bool = False) -> Dict:
        """
        Aggregate answers, persist tag stats and mark the session completed.

        Only the first call completes the session; later calls (a timeout racing
        a manual finish) return the stored result without writing again.
        """
        with self._finish_lock:
            if self._state == COMPLETED:
                logger.debug("Session %s already completed", self.session["id"])
                return self.result
            if self._state != IN_PROGRESS:
                raise ValidationError("No session in progress", field="session")
            self._state = FINISHING
            try:
                self.result = self._complete(forced)
            except Exception:
                self._state = IN_PROGRESS
                raise
            self._state = COMPLETED
            self.countdown.cancel()
            return self.result

    def _complete(self, forced: bool) -> Dict:
        session_id = self.session["id"]
        failed = self.recorder.flush(session_id)
        if failed:
            logger.warning("Session %s: %d answers not persisted before scoring", session_id, len(failed))

        answers = self.db.entity("UserAnswer").filter({"session_id": session_id})
        results = compute_results(self.session, self.package, self.questions, answers)
        rows = build_tag_stats_rows(self.session, results["tag_stats"])

        if not self._tag_stats_written:
            tag_store = self.db.entity("QuestionTagStats")
            for row in rows:
                try:
                    tag_store.create(row)
                except RemoteOperationFailure as e:
                    logger.warning("Skipping tag stats %s|%s: %s", row["main_category"], row["sub_category"], e.message)
            self._tag_stats_written = True

        updated = self.db.entity("TryoutSession").update(session_id, {
            "end_time": utc_now_iso(),
            "status": COMPLETED,
            "total_score": results["score"],
            "correct_answers": results["correct"],
            "wrong_answers": results["wrong"],
            "unanswered": results["unanswered"],
        })
        self.session = {**self.session, **updated}
        logger.info(
            "Session %s completed%s: score=%d", session_id, " (time up)" if forced else "", results["score"]
        )
        return {**results, "session": self.session, "tag_stats": rows, "forced": forced}

    def poll(self, now: Optional[float] = None) -> str:
        """
        Advance the countdown to `now`; once expired and past the grace delay,
        complete the session with forced=True. Returns the countdown state.
        """
        state = self.countdown.sync(now)
        if state == EXPIRED and self._state == IN_PROGRESS and not self._forced_attempted:
            now = self.clock() if now is None else now
            if now - self.countdown.expired_at >= self.forced_finish_delay:
                # A failed forced finish is not retried; the user can still finish manually
                self._forced_attempted = True
                self.finish_session(forced=True)
        return state

    def _on_time_up(self) -> None:
        self.timed_out = True
        logger.info("Time up for session %s", self.session["id"] if self.session else None)

    def close(self) -> None:
        """Tear down: stop the countdown and the answer writer."""
        self.countdown.cancel()
        self.recorder.shutdown()

    # ============= Navigation & answers =============

    def go_to(self, index: int) -> Dict:
        if not self.questions:
            raise ValidationError("No questions loaded", field="question")
        self.current_index = max(0, min(index, len(self.questions) - 1))
        self.question_timer.show(self.current_index)
        return self.current_question()

    def next_question(self) -> Dict:
        return self.go_to(self.current_index + 1)

    def previous_question(self) -> Dict:
        return self.go_to(self.current_index - 1)

    def current_question(self) -> Optional[Dict]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    def select_answer(self, choice: str) -> Dict:
        """Record `choice` for the displayed question with its elapsed time."""
        if self._state != IN_PROGRESS:
            raise ValidationError("Session is not in progress", field="session")
        if self.countdown.sync() == EXPIRED:
            raise ValidationError("Time is up, answers can no longer be changed", field="session")
        question = self.current_question()
        return self.recorder.record_answer(self.session, question, choice, self.question_timer.elapsed())

    def answers(self) -> Dict[str, str]:
        if self.session is None:
            return {}
        return self.recorder.answered(self.session["id"])

    def failed_answers(self) -> List[Dict]:
        """Questions whose last answer was rejected by the store since the previous call."""
        if self.session is None:
            return []
        failed = set(self.recorder.failed(self.session["id"]))
        return [q for q in self.questions if str(q["id"]) in failed]

    # ============= Status =============

    @property
    def is_finished(self) -> bool:
        return self._state == COMPLETED

    @property
    def remaining_seconds(self) -> int:
        return self.countdown.remaining

    def get_session_summary(self) -> Dict:
        """Real-time summary for display during the tryout."""
        answered = self.answers()
        n = len(self.questions)
        return {
            "session_id": self.session["id"] if self.session else None,
            "current_question": self.current_index + 1,
            "total_questions": n,
            "answered": len(answered),
            "progress_percent": round((self.current_index + 1) / n * 100) if n else 0,
            "time_remaining_sec": self.countdown.remaining,
            "timed_out": self.timed_out,
        }
