def normalize_answer(text: str) -> str:
    return (text or "").strip().casefold()

def is_correct(submitted: str, canonical: str) -> bool:
    """Exact match after trimming and case-folding.

    No numeric equivalence is attempted, so "0.5" and "1/2" are different
    answers. Competition answer keys are written in a single canonical form.
    """
    return normalize_answer(submitted) == normalize_answer(canonical)
