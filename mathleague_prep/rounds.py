from enum import Enum
from typing import Dict
from pydantic import BaseModel, ConfigDict


class RoundType(str, Enum):
    SPRINT = "sprint"
    TARGET = "target"
    NUMBERSENSE = "numbersense"
    TEAM = "team"


class ScoringSystem(str, Enum):
    STANDARD = "standard"
    PENALTY = "penalty"


class RoundConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    round_type: RoundType
    duration_seconds: int
    question_count: int
    calculator_allowed: bool
    scoring_system: ScoringSystem
    description: str


ROUND_CONFIGS: Dict[RoundType, RoundConfig] = {
    RoundType.SPRINT: RoundConfig(
        round_type=RoundType.SPRINT,
        duration_seconds=40 * 60,
        question_count=30,
        calculator_allowed=False,
        scoring_system=ScoringSystem.PENALTY,
        description="40 min • 30 multiple choice • -1 for wrong answers",
    ),
    RoundType.TARGET: RoundConfig(
        round_type=RoundType.TARGET,
        duration_seconds=24 * 60,
        question_count=8,
        calculator_allowed=True,
        scoring_system=ScoringSystem.STANDARD,
        description="4 pairs × 6 min • calculators allowed",
    ),
    RoundType.NUMBERSENSE: RoundConfig(
        round_type=RoundType.NUMBERSENSE,
        duration_seconds=10 * 60,
        question_count=80,
        calculator_allowed=False,
        scoring_system=ScoringSystem.STANDARD,
        description="10 min • 80 problems • mental math only",
    ),
    RoundType.TEAM: RoundConfig(
        round_type=RoundType.TEAM,
        duration_seconds=20 * 60,
        question_count=10,
        calculator_allowed=True,
        scoring_system=ScoringSystem.STANDARD,
        description="20 min • 10 problems • calculators allowed",
    ),
}


def get_round_config(round_type: RoundType | str) -> RoundConfig:
    return ROUND_CONFIGS[RoundType(round_type)]
