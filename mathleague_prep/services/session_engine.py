"""Timed practice-round state machine.

All state changes go through `reduce(state, event)`, which returns the next
state plus a tuple of effects for the driver to run. `SessionEngine` is the
asyncio driver: it owns the countdown task, the top-up task and the
submission tasks, and applies events one at a time on the event loop.

Completed and cancelled are terminal. `reduce` ignores every event once a
session is terminal, so finalization runs at most once no matter whether the
countdown or the last answer gets there first.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, NamedTuple, Optional, Set, Tuple, Union
from pydantic import BaseModel, ConfigDict
from ..config import settings
from ..models import AnswerOutcome, Problem, SessionPhase, SessionResults, SessionState
from ..rounds import RoundConfig, RoundType, get_round_config
from ..state import SessionStore
from .answer_evaluator import is_correct
from .problem_supplier import ProblemSupplier
from .scoring import accuracy_percent, compute_score

logger = logging.getLogger("mathleague_prep")

DEFAULT_HINT = "Think step by step and look for patterns!"
SAVE_FAILED_NOTICE = "Failed to save session results"

TERMINAL_PHASES = (SessionPhase.COMPLETED, SessionPhase.CANCELLED)

class _Message(BaseModel):
    model_config = ConfigDict(frozen=True)

# Events

class SessionStarted(_Message):
    session_id: str
    problems: Tuple[Problem, ...]
    now: float

class StartFailed(_Message):
    reason: str

class Tick(_Message):
    now: float

class AnswerSubmitted(_Message):
    answer: str
    now: float

class AnswerJudged(_Message):
    index: int
    is_correct: bool

class HintRequested(_Message):
    pass

class ProblemsSupplied(_Message):
    problems: Tuple[Problem, ...]

class CancelRequested(_Message):
    pass

Event = Union[SessionStarted, StartFailed, Tick, AnswerSubmitted, AnswerJudged, HintRequested, ProblemsSupplied, CancelRequested]

# Effects

class SubmitAnswer(_Message):
    session_id: str
    index: int
    problem_id: str
    answer: str
    time_spent: int
    hints_used: int

class RequestTopUp(_Message):
    count: int
    start: int

class Finalize(_Message):
    results: SessionResults

class SessionClosed(_Message):
    reason: str

Effect = Union[SubmitAnswer, RequestTopUp, Finalize, SessionClosed]

class Transition(NamedTuple):
    state: SessionState
    effects: Tuple[Effect, ...] = ()

def initial_state(round_type: RoundType, config: RoundConfig | None = None, *, top_up_threshold: int | None = None, top_up_batch_size: int | None = None) -> SessionState:
    round_type = RoundType(round_type)
    config = config or get_round_config(round_type)
    return SessionState(
        round_type=round_type,
        round_config=config,
        time_remaining_seconds=config.duration_seconds,
        top_up_threshold=top_up_threshold if top_up_threshold is not None else settings.top_up_threshold,
        top_up_batch_size=top_up_batch_size if top_up_batch_size is not None else settings.problem_batch_size,
    )

def _finalize(state: SessionState, now: float) -> Transition:
    answered = state.answered_count
    correct = state.correct_count
    started_at = state.started_at if state.started_at is not None else now
    results = SessionResults(
        session_id=state.session_id or "",
        round_type=state.round_type,
        score=compute_score(state.round_config.scoring_system, correct, answered),
        correct_count=correct,
        answered_count=answered,
        total_questions=state.round_config.question_count,
        time_spent_seconds=max(0, int(round(now - started_at))),
        accuracy_percent=accuracy_percent(correct, answered),
    )
    completed = state.model_copy(update={
        "phase": SessionPhase.COMPLETED,
        "current_index": len(state.problems),
        "top_up_pending": False,
        "finalized": True,
        "results": results,
    })
    return Transition(completed, (Finalize(results=results),))

def _on_started(state: SessionState, event: SessionStarted) -> Transition:
    if state.phase != SessionPhase.INITIALIZING:
        return Transition(state)
    problems = event.problems[:state.round_config.question_count]
    if not problems:
        cancelled = state.model_copy(update={"phase": SessionPhase.CANCELLED, "session_id": event.session_id})
        return Transition(cancelled, (SessionClosed(reason="no_problems_available"),))
    return Transition(state.model_copy(update={
        "phase": SessionPhase.ACTIVE,
        "session_id": event.session_id,
        "problems": tuple(problems),
        "current_index": 0,
        "started_at": event.now,
        "problem_started_at": event.now,
    }))

def _on_tick(state: SessionState, event: Tick) -> Transition:
    if not state.active:
        return Transition(state)
    remaining = max(0, state.time_remaining_seconds - 1)
    state = state.model_copy(update={"time_remaining_seconds": remaining})
    if remaining == 0:
        return _finalize(state, event.now)
    return Transition(state)

def _on_answer(state: SessionState, event: AnswerSubmitted) -> Transition:
    if not state.active:
        return Transition(state)
    index = state.current_index
    if index in state.answers:
        return Transition(state)
    problem = state.problems[index]
    problem_started_at = state.problem_started_at if state.problem_started_at is not None else event.now
    effects: List[Effect] = [SubmitAnswer(
        session_id=state.session_id or "",
        index=index,
        problem_id=problem.id,
        answer=event.answer,
        time_spent=max(0, int(round(event.now - problem_started_at))),
        hints_used=state.hints_used.get(index, 0),
    )]
    state = state.model_copy(update={
        "answers": {**state.answers, index: event.answer},
        "verdicts": {**state.verdicts, index: is_correct(event.answer, problem.canonical_answer)},
    })

    loaded = len(state.problems)
    question_count = state.round_config.question_count
    last_index = min(loaded, question_count) - 1
    if index >= last_index:
        transition = _finalize(state, event.now)
        return Transition(transition.state, tuple(effects) + transition.effects)

    unplayed = loaded - index - 1
    if unplayed < state.top_up_threshold and loaded < question_count and not state.top_up_pending:
        effects.append(RequestTopUp(count=min(state.top_up_batch_size, question_count - loaded), start=loaded))
        state = state.model_copy(update={"top_up_pending": True})

    state = state.model_copy(update={"current_index": index + 1, "problem_started_at": event.now})
    return Transition(state, tuple(effects))

def _on_judged(state: SessionState, event: AnswerJudged) -> Transition:
    if not state.active or event.index not in state.answers:
        return Transition(state)
    return Transition(state.model_copy(update={"verdicts": {**state.verdicts, event.index: event.is_correct}}))

def _on_hint(state: SessionState, event: HintRequested) -> Transition:
    if not state.active:
        return Transition(state)
    index = state.current_index
    return Transition(state.model_copy(update={"hints_used": {**state.hints_used, index: state.hints_used.get(index, 0) + 1}}))

def _on_supplied(state: SessionState, event: ProblemsSupplied) -> Transition:
    if not state.active:
        return Transition(state)
    room = state.round_config.question_count - len(state.problems)
    known = {p.id for p in state.problems}
    fresh = [p for p in event.problems if p.id not in known][:max(0, room)]
    return Transition(state.model_copy(update={
        "problems": state.problems + tuple(fresh),
        "top_up_pending": False,
    }))

def _on_cancel(state: SessionState, event: CancelRequested) -> Transition:
    cancelled = state.model_copy(update={"phase": SessionPhase.CANCELLED, "top_up_pending": False})
    return Transition(cancelled, (SessionClosed(reason="cancelled"),))

def _on_start_failed(state: SessionState, event: StartFailed) -> Transition:
    if state.phase != SessionPhase.INITIALIZING:
        return Transition(state)
    return Transition(state.model_copy(update={"phase": SessionPhase.CANCELLED}), (SessionClosed(reason=event.reason),))

_HANDLERS: Dict[type, Callable[[SessionState, Event], Transition]] = {
    SessionStarted: _on_started,
    StartFailed: _on_start_failed,
    Tick: _on_tick,
    AnswerSubmitted: _on_answer,
    AnswerJudged: _on_judged,
    HintRequested: _on_hint,
    ProblemsSupplied: _on_supplied,
    CancelRequested: _on_cancel,
}

def reduce(state: SessionState, event: Event) -> Transition:
    if state.phase in TERMINAL_PHASES:
        return Transition(state)
    return _HANDLERS[type(event)](state, event)


class SessionStartError(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

class SessionInactiveError(Exception):
    pass

class SessionEngine:
    def __init__(
        self,
        store: SessionStore,
        supplier: ProblemSupplier,
        student_id: str,
        round_type: RoundType,
        *,
        config: RoundConfig | None = None,
        difficulty: int | None = None,
        grade_level: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float | None = None,
        auto_tick: bool = True,
        on_complete: Optional[Callable[[SessionResults], None]] = None,
    ) -> None:
        self.store = store
        self.supplier = supplier
        self.student_id = student_id
        self.round_type = RoundType(round_type)
        self.difficulty = difficulty if difficulty is not None else settings.default_difficulty
        self.grade_level = grade_level if grade_level is not None else settings.default_grade_level
        self.clock = clock
        self.tick_interval = tick_interval if tick_interval is not None else settings.tick_interval_seconds
        self.auto_tick = auto_tick
        self.on_complete = on_complete
        self.state = initial_state(self.round_type, config)
        self.notices: List[str] = []
        self._timer_task: Optional[asyncio.Task] = None
        self._top_up_task: Optional[asyncio.Task] = None
        self._submissions: Dict[int, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    @property
    def session_id(self) -> Optional[str]:
        return self.state.session_id

    @property
    def results(self) -> Optional[SessionResults]:
        return self.state.results

    @property
    def running_score(self) -> int:
        return compute_score(self.state.round_config.scoring_system, self.state.correct_count, self.state.answered_count)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def dispatch(self, event: Event) -> SessionState:
        transition = reduce(self.state, event)
        self.state = transition.state
        for effect in transition.effects:
            self._apply(effect)
        return self.state

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, SubmitAnswer):
            self._submissions[effect.index] = self._spawn(self._submit(effect))
        elif isinstance(effect, RequestTopUp):
            self._top_up_task = self._spawn(self._top_up(effect))
        elif isinstance(effect, Finalize):
            self._on_finalized(effect.results)
        elif isinstance(effect, SessionClosed):
            self._stop_tasks()
            logger.info({"event": "session_closed", "session_id": self.state.session_id, "reason": effect.reason})
            self._closed.set()

    async def start(self) -> SessionState:
        config = self.state.round_config
        try:
            session_id = await self.store.create_session(self.student_id, self.round_type, config.question_count)
        except Exception as exc:
            logger.exception("session_create_failed", extra={"student_id": self.student_id, "round_type": self.round_type.value})
            self.dispatch(StartFailed(reason="session_create_failed"))
            raise SessionStartError("session_create_failed") from exc

        count = min(config.question_count, self.state.top_up_batch_size)
        problems = await self.supplier.request_batch(self.round_type, self.difficulty, self.grade_level, count, session_id=session_id)
        if problems:
            await self._save_problems(problems)
        self.dispatch(SessionStarted(session_id=session_id, problems=tuple(problems), now=self.clock()))
        if not self.state.active:
            reason = "no_problems_available" if not problems else "cancelled"
            raise SessionStartError(reason)

        if self.auto_tick:
            self._timer_task = self._spawn(self._run_countdown())
        logger.info({
            "event": "session_started",
            "session_id": session_id,
            "round_type": self.round_type.value,
            "problems": len(self.state.problems),
            "duration_seconds": config.duration_seconds,
        })
        return self.state

    async def _save_problems(self, problems: List[Problem]) -> None:
        try:
            await self.store.save_problems(problems)
        except Exception:
            logger.exception("problem_save_failed", extra={"session_id": self.state.session_id})

    async def _run_countdown(self) -> None:
        while self.state.active:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    def tick(self) -> SessionState:
        return self.dispatch(Tick(now=self.clock()))

    async def submit_answer(self, answer: str) -> AnswerOutcome:
        """Record `answer` for the current problem and return the verdict.

        The server verdict is awaited when the store call succeeds; otherwise
        the local verdict is returned and the session carries on.
        """
        problem = self.state.current_problem
        if problem is None:
            raise SessionInactiveError(self.state.phase.value)
        index = self.state.current_index
        self.dispatch(AnswerSubmitted(answer=answer, now=self.clock()))
        task = self._submissions.get(index)
        if task is not None:
            outcome = await task
            if outcome is not None:
                return outcome
        return AnswerOutcome(is_correct=is_correct(answer, problem.canonical_answer), correct_answer=problem.canonical_answer)

    async def _submit(self, effect: SubmitAnswer) -> Optional[AnswerOutcome]:
        try:
            outcome = await self.store.submit_answer(effect.session_id, effect.problem_id, effect.answer, effect.time_spent, effect.hints_used)
        except Exception:
            logger.exception("answer_submit_failed", extra={"session_id": effect.session_id, "problem_id": effect.problem_id})
            return None
        self.dispatch(AnswerJudged(index=effect.index, is_correct=outcome.is_correct))
        logger.debug({"event": "answer_judged", "session_id": effect.session_id, "index": effect.index, "is_correct": outcome.is_correct})
        return outcome

    def request_hint(self) -> str:
        problem = self.state.current_problem
        if problem is None:
            raise SessionInactiveError(self.state.phase.value)
        self.dispatch(HintRequested())
        return problem.explanation or DEFAULT_HINT

    def cancel(self) -> SessionState:
        return self.dispatch(CancelRequested())

    async def _top_up(self, effect: RequestTopUp) -> None:
        session_id = self.state.session_id
        try:
            problems = await self.supplier.top_up(self.round_type, self.difficulty, self.grade_level, effect.count, start=effect.start, session_id=session_id)
        except asyncio.CancelledError:
            logger.debug({"event": "top_up_abandoned", "session_id": session_id})
            raise
        except Exception:
            logger.exception("top_up_failed", extra={"session_id": session_id})
            problems = []
        if not self.state.active:
            logger.debug({"event": "top_up_discarded", "session_id": session_id, "count": len(problems)})
            return
        if problems:
            await self._save_problems(problems)
        self.dispatch(ProblemsSupplied(problems=tuple(problems)))
        logger.debug({"event": "top_up_applied", "session_id": session_id, "count": len(problems), "loaded": len(self.state.problems)})

    def _stop_tasks(self) -> None:
        current = asyncio.current_task()
        for task in (self._timer_task, self._top_up_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def _on_finalized(self, results: SessionResults) -> None:
        self._stop_tasks()
        logger.info({"event": "session_completed", **results.model_dump(mode="json")})
        self._spawn(self._save_completion(results))
        if self.on_complete is not None:
            self.on_complete(results)
        self._closed.set()

    async def _save_completion(self, results: SessionResults) -> None:
        try:
            await self.store.complete_session(results.session_id, results.score, results.time_spent_seconds)
        except Exception:
            logger.exception("session_complete_save_failed", extra={"session_id": results.session_id})
            self.notices.append(SAVE_FAILED_NOTICE)

    async def wait_finished(self) -> SessionState:
        await self._closed.wait()
        current = asyncio.current_task()
        pending = [t for t in self._background if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.state
