import logging
from typing import Dict, List, Tuple
from pydantic import BaseModel, ConfigDict
from ..models import Problem
from ..rounds import RoundType

logger = logging.getLogger("mathleague_prep")

class FallbackProblem(BaseModel):
    model_config = ConfigDict(frozen=True)

    local_id: str
    prompt_text: str
    canonical_answer: str
    choices: Tuple[str, ...] | None = None
    explanation: str
    tags: Tuple[str, ...] = ()

FALLBACK_BANK: Dict[RoundType, Tuple[FallbackProblem, ...]] = {
    RoundType.SPRINT: (
        FallbackProblem(
            local_id="local-sprint-1",
            prompt_text="What is 3/4 + 1/8?",
            canonical_answer="7/8",
            choices=("7/8", "4/12", "1/2", "5/8"),
            explanation="Find common denominator: 3/4 = 6/8, then 6/8 + 1/8 = 7/8",
            tags=("fractions", "addition"),
        ),
        FallbackProblem(
            local_id="local-sprint-2",
            prompt_text="A rectangle has length 9 and width 4. What is its perimeter?",
            canonical_answer="26",
            choices=("26", "36", "13", "18"),
            explanation="Perimeter = 2(length + width) = 2(9 + 4) = 2(13) = 26",
            tags=("geometry", "perimeter"),
        ),
        FallbackProblem(
            local_id="local-sprint-3",
            prompt_text="What is 15% of 60?",
            canonical_answer="9",
            choices=("9", "12", "6", "15"),
            explanation="15% = 0.15, so 0.15 × 60 = 9",
            tags=("percentages", "multiplication"),
        ),
    ),
    RoundType.TARGET: (
        FallbackProblem(
            local_id="local-target-1",
            prompt_text="The sum of two consecutive even integers is 74. What is the larger integer?",
            canonical_answer="38",
            explanation="Let x be first even integer. Then x + (x+2) = 74, so 2x + 2 = 74, 2x = 72, x = 36. Larger is 38.",
            tags=("algebra", "consecutive integers"),
        ),
        FallbackProblem(
            local_id="local-target-2",
            prompt_text="A circle has diameter 12. What is its area? (Use π = 3.14)",
            canonical_answer="113.04",
            explanation="Radius = 6, Area = πr² = 3.14 × 6² = 3.14 × 36 = 113.04",
            tags=("geometry", "circles", "area"),
        ),
    ),
    RoundType.NUMBERSENSE: (
        FallbackProblem(
            local_id="local-ns-1",
            prompt_text="25 × 16",
            canonical_answer="400",
            explanation="25 × 16 = 25 × 4 × 4 = 100 × 4 = 400",
            tags=("multiplication", "mental math"),
        ),
        FallbackProblem(
            local_id="local-ns-2",
            prompt_text="What is 20% of 85?",
            canonical_answer="17",
            explanation="20% = 1/5, so 85 ÷ 5 = 17",
            tags=("percentages", "mental math"),
        ),
    ),
    RoundType.TEAM: (
        FallbackProblem(
            local_id="local-team-1",
            prompt_text="A pizza is cut into 12 equal slices. If 3/4 of the pizza is eaten, how many slices remain?",
            canonical_answer="3",
            explanation="3/4 of 12 slices = 9 slices eaten. 12 - 9 = 3 slices remain.",
            tags=("fractions", "word problems"),
        ),
        FallbackProblem(
            local_id="local-team-2",
            prompt_text="Tom has twice as many marbles as Sarah. Together they have 36 marbles. How many does Tom have?",
            canonical_answer="24",
            explanation="Let Sarah have x marbles. Tom has 2x. x + 2x = 36, so 3x = 36, x = 12. Tom has 24.",
            tags=("algebra", "word problems"),
        ),
    ),
}

def fallback_problems(
    round_type: RoundType,
    difficulty: int,
    count: int,
    start: int = 0,
    bank: Dict[RoundType, Tuple[FallbackProblem, ...]] | None = None,
) -> List[Problem]:
    """Cycle through the local bank for `round_type` until `count` problems exist.

    The cycle position is `start + i`, so a top-up carries on where the
    previous batch stopped instead of repeating its first entry.

    Ids are `<local_id>-<index>` with `index` counted from `start`, so repeats
    of the same bank entry stay distinguishable within a session.
    """
    entries = (bank if bank is not None else FALLBACK_BANK).get(round_type, ())
    if not entries:
        logger.error({"event": "fallback_bank_empty", "round_type": round_type.value})
        return []
    items: List[Problem] = []
    for i in range(count):
        entry = entries[(start + i) % len(entries)]
        items.append(Problem(
            id=f"{entry.local_id}-{start + i}",
            round_type=round_type,
            prompt_text=entry.prompt_text,
            canonical_answer=entry.canonical_answer,
            choices=entry.choices,
            difficulty=difficulty,
            explanation=entry.explanation,
            tags=frozenset(entry.tags) | {"fallback"},
        ))
    logger.debug({"event": "fallback_problems_generated", "round_type": round_type.value, "count": len(items), "start": start})
    return items
