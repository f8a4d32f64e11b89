from dataclasses import dataclass, field
from typing import List

import pytest

from mathleague_prep.models import Problem
from mathleague_prep.rounds import RoundConfig, RoundType, ScoringSystem
from mathleague_prep.services.problem_supplier import ProblemSupplier
from mathleague_prep.state import InMemorySessionStore


@dataclass
class FakeClock:
    t: float = 1000.0

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def make_problem(i: int, round_type: RoundType = RoundType.SPRINT, answer: str = "7/8", explanation: str = "Add the fractions") -> Problem:
    choices = (answer, "1/2", "3/8", "5/8") if round_type == RoundType.SPRINT else None
    return Problem(
        id=f"remote-{round_type.value}-{i}",
        round_type=round_type,
        prompt_text=f"Problem {i}",
        canonical_answer=answer,
        choices=choices,
        difficulty=3,
        explanation=explanation,
        tags=frozenset({"test"}),
    )


def make_config(round_type: RoundType = RoundType.SPRINT, *, duration_seconds: int = 600, question_count: int = 30, scoring_system: ScoringSystem = ScoringSystem.PENALTY) -> RoundConfig:
    return RoundConfig(
        round_type=round_type,
        duration_seconds=duration_seconds,
        question_count=question_count,
        calculator_allowed=False,
        scoring_system=scoring_system,
        description="test round",
    )


@dataclass
class FakeSource:
    """Problem source returning numbered problems, or raising `error`."""
    error: Exception | None = None
    limit: int | None = None
    calls: List[dict] = field(default_factory=list)
    issued: int = 0

    def generate(self, round_type, difficulty, grade_level, count, topics=None, session_id=None):
        self.calls.append({"round_type": round_type, "difficulty": difficulty, "grade_level": grade_level, "count": count})
        if self.error is not None:
            raise self.error
        n = count if self.limit is None else min(count, self.limit)
        problems = [make_problem(self.issued + i, round_type) for i in range(n)]
        self.issued += n
        return problems


class FlakyStore(InMemorySessionStore):
    def __init__(self, fail_create: bool = False, fail_submit: bool = False, fail_complete: bool = False) -> None:
        super().__init__()
        self.fail_create = fail_create
        self.fail_submit = fail_submit
        self.fail_complete = fail_complete

    async def create_session(self, student_id, round_type, total_questions):
        if self.fail_create:
            raise ConnectionError("store unavailable")
        return await super().create_session(student_id, round_type, total_questions)

    async def submit_answer(self, session_id, problem_id, answer, time_spent, hints_used):
        if self.fail_submit:
            raise ConnectionError("store unavailable")
        return await super().submit_answer(session_id, problem_id, answer, time_spent, hints_used)

    async def complete_session(self, session_id, score, time_spent):
        if self.fail_complete:
            raise ConnectionError("store unavailable")
        return await super().complete_session(session_id, score, time_spent)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def supplier(source):
    return ProblemSupplier(source, timeout_seconds=5)


@pytest.fixture
def store():
    return FlakyStore()
