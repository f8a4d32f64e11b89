from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, FrozenSet, List, Optional, Tuple
from .rounds import RoundConfig, RoundType

class Problem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    round_type: RoundType
    prompt_text: str
    canonical_answer: str
    choices: Optional[Tuple[str, ...]] = None
    difficulty: int = Field(default=3, ge=1, le=5)
    explanation: str = ""
    tags: FrozenSet[str] = frozenset()

class ProblemView(BaseModel):
    """A problem as shown to the student, without its answer."""
    id: str
    round_type: RoundType
    prompt_text: str
    choices: Optional[List[str]] = None
    difficulty: int
    tags: List[str]

    @classmethod
    def from_problem(cls, problem: Problem) -> "ProblemView":
        return cls(
            id=problem.id,
            round_type=problem.round_type,
            prompt_text=problem.prompt_text,
            choices=list(problem.choices) if problem.choices is not None else None,
            difficulty=problem.difficulty,
            tags=sorted(problem.tags),
        )

class SessionPhase(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class SessionResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    round_type: RoundType
    score: int
    correct_count: int
    answered_count: int
    total_questions: int
    time_spent_seconds: int
    accuracy_percent: float

class SessionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: Optional[str] = None
    round_type: RoundType
    round_config: RoundConfig
    phase: SessionPhase = SessionPhase.INITIALIZING
    problems: Tuple[Problem, ...] = ()
    current_index: int = 0
    answers: Dict[int, str] = Field(default_factory=dict)
    verdicts: Dict[int, bool] = Field(default_factory=dict)
    hints_used: Dict[int, int] = Field(default_factory=dict)
    started_at: Optional[float] = None
    problem_started_at: Optional[float] = None
    time_remaining_seconds: int = 0
    top_up_threshold: int = 3
    top_up_batch_size: int = 10
    top_up_pending: bool = False
    finalized: bool = False
    results: Optional[SessionResults] = None

    @property
    def active(self) -> bool:
        return self.phase == SessionPhase.ACTIVE

    @property
    def current_problem(self) -> Optional[Problem]:
        if self.active and 0 <= self.current_index < len(self.problems):
            return self.problems[self.current_index]
        return None

    @property
    def correct_count(self) -> int:
        return sum(1 for v in self.verdicts.values() if v)

    @property
    def answered_count(self) -> int:
        return len(self.answers)

class AnswerOutcome(BaseModel):
    is_correct: bool
    correct_answer: Optional[str] = None

class PracticeSessionRecord(BaseModel):
    id: str
    student_id: str
    round_type: RoundType
    total_questions: int
    correct_answers: int = 0
    score: int = 0
    time_spent: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

class ProblemAttemptRecord(BaseModel):
    session_id: str
    problem_id: str
    student_answer: str
    is_correct: bool
    time_spent: int = 0
    hints_used: int = 0
    attempted_at: datetime

class GenerateProblemsRequest(BaseModel):
    round_type: RoundType
    difficulty: int = Field(default=3, ge=1, le=5)
    grade_level: int = Field(default=4, ge=3, le=6)
    count: int = Field(default=1, ge=1, le=10)
    topics: Optional[List[str]] = None

class GenerateProblemsResponse(BaseModel):
    problems: List[Problem]

class StartSessionRequest(BaseModel):
    student_id: str
    round_type: RoundType

class SessionView(BaseModel):
    session_id: Optional[str] = None
    round_type: RoundType
    phase: SessionPhase
    current_index: int
    problems_loaded: int
    question_count: int
    current_problem: Optional[ProblemView] = None
    time_remaining_seconds: int
    answered_count: int
    running_score: int
    hints_used: int = 0
    results: Optional[SessionResults] = None
    notices: List[str] = Field(default_factory=list)

class SubmitAnswerRequest(BaseModel):
    answer: str

class SubmitAnswerResponse(BaseModel):
    outcome: AnswerOutcome
    session: SessionView

class HintResponse(BaseModel):
    hint: str
    hints_used: int

class SessionHistoryResponse(BaseModel):
    sessions: List[PracticeSessionRecord]
