import json
from typing import Dict, List
from ..rounds import RoundType

ROUND_GUIDANCE: Dict[RoundType, str] = {
	RoundType.SPRINT: "SPRINT ROUND: multiple choice problems solvable in 1-2 minutes without a calculator. Provide exactly 4 answer choices, one of which equals the answer.",
	RoundType.TARGET: "TARGET ROUND: calculator problems needing 3-4 minutes of deeper thinking. Numerical answers only, no choices.",
	RoundType.NUMBERSENSE: "NUMBER SENSE ROUND: mental math problems solvable in 30 seconds. Integer answers only, no choices.",
	RoundType.TEAM: "TEAM ROUND: multi-step word problems for 2-3 minutes of team discussion. Numerical answers only, no choices.",
}

ROUND_EXAMPLES: Dict[RoundType, List[str]] = {
	RoundType.SPRINT: ["What is 3/4 + 1/6? (A) 5/10 (B) 11/12 (C) 4/10 (D) 5/6"],
	RoundType.TARGET: ["The sum of two consecutive integers is 37. What is the larger integer?"],
	RoundType.NUMBERSENSE: ["25 × 16 = ?", "What is 15% of 80?"],
	RoundType.TEAM: ["Sarah has 3 times as many stickers as Tom. Together they have 48 stickers. How many does Sarah have?"],
}

class PromptBuilder:
	def build(self, *, round_type: RoundType, difficulty: int, grade_level: int, count: int, topics: List[str] | None) -> str:
		context = {
			"meta": {"round_type": round_type.value, "difficulty": difficulty, "grade_level": grade_level},
			"topics": topics or [],
			"examples": ROUND_EXAMPLES[round_type],
			"format": {
				"num_problems": count,
				"problem_shape": {
					"prompt": "string",
					"answer": "string (just the value)",
					"choices": ["string", "string", "string", "string"] if round_type == RoundType.SPRINT else None,
					"explanation": "string (kid-friendly solution)",
					"difficulty": "integer 1-5",
					"tags": ["string"],
				},
			},
		}
		instructions = (
			"You are a Math League coach for elementary students (grades 3-6). "
			"Generate authentic Math League competition problems. "
			+ ROUND_GUIDANCE[round_type] + " "
			"Use the CONTEXT JSON below for grade, difficulty (1-5) and topics. "
			"Return strict JSON only: an object {\"problems\": [...]} following format.problem_shape."
		)
		return instructions + "\n" + json.dumps(context, ensure_ascii=False)
