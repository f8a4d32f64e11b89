import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol
from .models import AnswerOutcome, PracticeSessionRecord, Problem, ProblemAttemptRecord
from .rounds import RoundType
from .services.answer_evaluator import is_correct

class UnknownSessionError(LookupError):
	pass

class UnknownProblemError(LookupError):
	pass

class SessionStore(Protocol):
	async def create_session(self, student_id: str, round_type: RoundType, total_questions: int) -> str:
		...

	async def save_problems(self, problems: List[Problem]) -> None:
		...

	async def submit_answer(self, session_id: str, problem_id: str, answer: str, time_spent: int, hints_used: int) -> AnswerOutcome:
		...

	async def complete_session(self, session_id: str, score: int, time_spent: int) -> PracticeSessionRecord:
		...

def _now() -> datetime:
	return datetime.now(timezone.utc)

class InMemorySessionStore:
	"""Practice sessions, attempts and problems kept in process memory.

	Answers are judged here, not by the engine, using the same normalization
	as the engine's local verdict.
	"""

	def __init__(self) -> None:
		self.sessions: Dict[str, PracticeSessionRecord] = {}
		self.problems: Dict[str, Problem] = {}
		self.attempts: Dict[str, List[ProblemAttemptRecord]] = {}

	def _get(self, session_id: str) -> PracticeSessionRecord:
		record = self.sessions.get(session_id)
		if record is None:
			raise UnknownSessionError(session_id)
		return record

	async def create_session(self, student_id: str, round_type: RoundType, total_questions: int) -> str:
		session_id = str(uuid.uuid4())
		self.sessions[session_id] = PracticeSessionRecord(
			id=session_id,
			student_id=student_id,
			round_type=round_type,
			total_questions=total_questions,
			started_at=_now(),
		)
		self.attempts[session_id] = []
		return session_id

	async def save_problems(self, problems: List[Problem]) -> None:
		for p in problems:
			self.problems[p.id] = p

	def get_problem(self, problem_id: str) -> Optional[Problem]:
		return self.problems.get(problem_id)

	async def submit_answer(self, session_id: str, problem_id: str, answer: str, time_spent: int, hints_used: int) -> AnswerOutcome:
		record = self._get(session_id)
		problem = self.problems.get(problem_id)
		if problem is None:
			raise UnknownProblemError(problem_id)
		correct = is_correct(answer, problem.canonical_answer)
		self.attempts[session_id].append(ProblemAttemptRecord(
			session_id=session_id,
			problem_id=problem_id,
			student_answer=answer,
			is_correct=correct,
			time_spent=time_spent or 0,
			hints_used=hints_used or 0,
			attempted_at=_now(),
		))
		if correct:
			self.sessions[session_id] = record.model_copy(update={"correct_answers": record.correct_answers + 1})
		return AnswerOutcome(is_correct=correct, correct_answer=problem.canonical_answer)

	async def complete_session(self, session_id: str, score: int, time_spent: int) -> PracticeSessionRecord:
		record = self._get(session_id)
		updated = record.model_copy(update={
			"completed_at": _now(),
			"score": score or 0,
			"time_spent": time_spent or 0,
		})
		self.sessions[session_id] = updated
		return updated

	def get_session_attempts(self, session_id: str) -> List[ProblemAttemptRecord]:
		self._get(session_id)
		return list(self.attempts.get(session_id, []))

	def get_student_sessions(self, student_id: str, limit: int = 10) -> List[PracticeSessionRecord]:
		records = [r for r in self.sessions.values() if r.student_id == student_id]
		records.sort(key=lambda r: r.started_at, reverse=True)
		return records[:limit]

session_store = InMemorySessionStore()
