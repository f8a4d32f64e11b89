from ..rounds import ScoringSystem

def compute_score(scoring_system: ScoringSystem | str, correct_count: int, total_answered: int) -> int:
    system = ScoringSystem(scoring_system)
    if system == ScoringSystem.PENALTY:
        # +1 per correct, -1 per incorrect, floored at zero
        incorrect = total_answered - correct_count
        return max(0, correct_count - incorrect)
    if system == ScoringSystem.STANDARD:
        return correct_count
    raise ValueError(f"unsupported_scoring_system: {scoring_system}")

def accuracy_percent(correct_count: int, answered_count: int) -> float:
    if answered_count == 0:
        return 0.0
    return correct_count / answered_count * 100
