import asyncio
import time

from conftest import FakeSource
from mathleague_prep.rounds import RoundType
from mathleague_prep.services.fallback_bank import FALLBACK_BANK
from mathleague_prep.services.gemini_client import ProblemGenerationError
from mathleague_prep.services.problem_supplier import ProblemSupplier


def test_remote_problems_are_preferred(source, supplier):
    problems = asyncio.run(supplier.request_batch(RoundType.TARGET, 3, 4, 5))
    assert [p.id for p in problems] == [f"remote-target-{i}" for i in range(5)]
    assert source.calls[0]["count"] == 5
    assert supplier.remote_failures == 0


def test_forced_remote_failure_cycles_sprint_bank():
    supplier = ProblemSupplier(FakeSource(error=ProblemGenerationError("quota_exceeded")))
    problems = asyncio.run(supplier.request_batch("sprint", 3, 4, 10))

    assert len(problems) == 10
    assert len({p.id for p in problems}) == 10
    bank = FALLBACK_BANK[RoundType.SPRINT]
    for i, problem in enumerate(problems):
        entry = bank[i % len(bank)]
        assert problem.id == f"{entry.local_id}-{i}"
        assert problem.prompt_text == entry.prompt_text
        assert problem.canonical_answer == entry.canonical_answer
        assert problem.difficulty == 3
        assert "fallback" in problem.tags
    assert supplier.remote_failures == 1
    assert supplier.last_failure == "quota_exceeded"


def test_missing_source_falls_back():
    supplier = ProblemSupplier(None)
    problems = asyncio.run(supplier.request_batch(RoundType.TEAM, 2, 5, 3))
    assert [p.id for p in problems] == ["local-team-1-0", "local-team-2-1", "local-team-1-2"]


def test_start_offset_keeps_ids_unique_across_top_ups():
    supplier = ProblemSupplier(FakeSource(error=RuntimeError("down")))

    async def scenario():
        first = await supplier.request_batch(RoundType.NUMBERSENSE, 3, 4, 10)
        more = await supplier.top_up(RoundType.NUMBERSENSE, 3, 4, 10, start=len(first))
        return first + more

    problems = asyncio.run(scenario())
    assert len({p.id for p in problems}) == 20
    assert problems[10].id == "local-ns-1-10"


def test_top_up_continues_the_bank_cycle():
    supplier = ProblemSupplier(FakeSource(error=RuntimeError("down")))
    bank = FALLBACK_BANK[RoundType.SPRINT]

    async def scenario():
        first = await supplier.request_batch(RoundType.SPRINT, 3, 4, 10)
        more = await supplier.top_up(RoundType.SPRINT, 3, 4, 4, start=len(first))
        return first + more

    problems = asyncio.run(scenario())
    assert problems[9].prompt_text != problems[10].prompt_text
    assert [p.id for p in problems[9:]] == ["local-sprint-1-9", "local-sprint-2-10", "local-sprint-3-11", "local-sprint-1-12", "local-sprint-2-13"]
    for i, problem in enumerate(problems):
        assert problem.prompt_text == bank[i % len(bank)].prompt_text


def test_rejected_remote_items_are_replaced_one_for_one():
    supplier = ProblemSupplier(FakeSource(limit=2))
    problems = asyncio.run(supplier.request_batch(RoundType.SPRINT, 3, 4, 5, start=4))

    assert [p.id for p in problems[:2]] == ["remote-sprint-0", "remote-sprint-1"]
    assert [p.id for p in problems[2:]] == ["local-sprint-1-6", "local-sprint-2-7", "local-sprint-3-8"]
    bank = FALLBACK_BANK[RoundType.SPRINT]
    assert [p.prompt_text for p in problems[2:]] == [bank[i % len(bank)].prompt_text for i in (6, 7, 8)]
    assert supplier.remote_failures == 0


class SlowSource:
    def generate(self, round_type, difficulty, grade_level, count, topics=None, session_id=None):
        time.sleep(0.2)
        return []


def test_remote_timeout_falls_back():
    supplier = ProblemSupplier(SlowSource(), timeout_seconds=0.01)
    problems = asyncio.run(supplier.request_batch(RoundType.TARGET, 3, 4, 2))
    assert [p.id for p in problems] == ["local-target-1-0", "local-target-2-1"]
    assert supplier.last_failure == "timeout"


def test_empty_bank_and_failed_remote_yield_nothing():
    supplier = ProblemSupplier(FakeSource(error=RuntimeError("down")), bank={})
    assert asyncio.run(supplier.request_batch(RoundType.SPRINT, 3, 4, 10)) == []


def test_zero_count_skips_remote(source, supplier):
    assert asyncio.run(supplier.request_batch(RoundType.SPRINT, 3, 4, 0)) == []
    assert source.calls == []
