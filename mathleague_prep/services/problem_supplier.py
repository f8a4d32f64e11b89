import asyncio
import logging
from typing import Dict, List, Optional, Protocol, Tuple
from ..config import settings
from ..models import Problem
from ..rounds import RoundType
from .fallback_bank import FallbackProblem, fallback_problems

logger = logging.getLogger("mathleague_prep")

class ProblemSource(Protocol):
    def generate(self, round_type: RoundType, difficulty: int, grade_level: int, count: int, topics: List[str] | None = None, session_id: str | None = None) -> List[Problem]:
        ...

class ProblemSupplier:
    """Remote-first problem supply with a local bank behind it.

    Never raises: every remote failure is logged, counted and masked by
    fallback problems.
    """

    def __init__(self, source: Optional[ProblemSource], *, timeout_seconds: float | None = None, bank: Dict[RoundType, Tuple[FallbackProblem, ...]] | None = None) -> None:
        self.source = source
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.generation_timeout_seconds
        self.bank = bank
        self.remote_failures = 0
        self.last_failure: Optional[str] = None

    async def _generate_remote(self, round_type: RoundType, difficulty: int, grade_level: int, count: int, topics: List[str] | None, session_id: str | None) -> List[Problem]:
        if self.source is None:
            raise LookupError("no_problem_source")
        # SDK call blocks, keep it off the loop so countdowns keep running
        return await asyncio.wait_for(
            asyncio.to_thread(self.source.generate, round_type, difficulty, grade_level, count, topics, session_id),
            timeout=self.timeout_seconds,
        )

    def _record_failure(self, round_type: RoundType, reason: str) -> None:
        self.remote_failures += 1
        self.last_failure = reason
        logger.warning({"event": "remote_generation_failed", "round_type": round_type.value, "reason": reason, "failures": self.remote_failures})

    async def request_batch(self, round_type: RoundType, difficulty: int, grade_level: int, count: int, *, start: int = 0, topics: List[str] | None = None, session_id: str | None = None) -> List[Problem]:
        round_type = RoundType(round_type)
        if count <= 0:
            return []
        remote: List[Problem] = []
        try:
            remote = list(await self._generate_remote(round_type, difficulty, grade_level, count, topics, session_id))[:count]
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._record_failure(round_type, "timeout")
        except Exception as exc:
            self._record_failure(round_type, str(exc) or type(exc).__name__)
        shortfall = count - len(remote)
        if shortfall == 0:
            logger.debug({"event": "remote_batch_supplied", "round_type": round_type.value, "count": len(remote)})
            return remote
        if remote:
            # Rejected items are replaced one for one
            logger.debug({"event": "remote_batch_partial", "round_type": round_type.value, "valid": len(remote), "replaced": shortfall})
        return remote + fallback_problems(round_type, difficulty, shortfall, start=start + len(remote), bank=self.bank)

    async def top_up(self, round_type: RoundType, difficulty: int, grade_level: int, count: int, *, start: int = 0, topics: List[str] | None = None, session_id: str | None = None) -> List[Problem]:
        logger.debug({"event": "top_up_requested", "session_id": session_id, "round_type": RoundType(round_type).value, "count": count, "start": start})
        return await self.request_batch(round_type, difficulty, grade_level, count, start=start, topics=topics, session_id=session_id)
