from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .schemas import UNANSWERED, Answer, Question

# Inclusive lower bounds, highest first.
GRADE_THRESHOLDS: List[Tuple[int, str]] = [
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C"),
]
FAIL_GRADE = "F"

GRADE_MESSAGES: Dict[str, str] = {
    "A+": "Outstanding Performance!",
    "A": "Excellent Work!",
    "B+": "Good Performance!",
    "B": "Satisfactory!",
    "C": "Needs Improvement!",
    "F": "Better Luck Next Time!",
}


def freeze_answers(questions: Sequence[Question], selections: Mapping[str, int]) -> List[Answer]:
    """Build the Answer sequence in question order; unanswered questions score as incorrect."""
    answers = []
    for q in questions:
        selected = selections.get(q.id, UNANSWERED)
        answers.append(Answer(
            question_id=q.id,
            selected_answer=selected,
            is_correct=selected == q.correct_answer,
        ))
    return answers


def calculate_score(answers: Iterable[Answer]) -> Tuple[int, int]:
    answers = list(answers)
    score = sum(1 for a in answers if a.is_correct)
    if not answers:
        return 0, 0
    # Half-up rounding, so 12.5 reports as 13
    return score, (200 * score + len(answers)) // (2 * len(answers))


def grade_for(percentage: int) -> str:
    for bound, grade in GRADE_THRESHOLDS:
        if percentage >= bound:
            return grade
    return FAIL_GRADE


def grade_message(grade: str) -> str:
    return GRADE_MESSAGES[grade]
