import logging
from typing import List, Sequence

import pandas as pd
from pydantic import BaseModel

from .collaborator import Collaborator
from .schemas import UNANSWERED, Question, TestResult
from .scoring import grade_for, grade_message
from .timing import format_countdown

logger = logging.getLogger(__name__)


class ResultSummary(BaseModel):
    result: TestResult
    grade: str
    message: str
    correct: int
    answered: int
    unanswered: int
    time_spent_label: str


def summarize(result: TestResult) -> ResultSummary:
    answered = sum(1 for a in result.answers if a.selected_answer != UNANSWERED)
    grade = grade_for(result.percentage)
    return ResultSummary(
        result=result,
        grade=grade,
        message=grade_message(grade),
        correct=result.score,
        answered=answered,
        unanswered=result.total_questions - answered,
        time_spent_label=format_countdown(result.time_spent),
    )


async def load_history(collaborator: Collaborator, candidate_id: str) -> List[TestResult]:
    results = await collaborator.results_for(candidate_id)
    logger.info(f"Loaded {len(results)} results for {candidate_id}")
    return results


def history_frame(results: Sequence[TestResult]) -> pd.DataFrame:
    """One row per attempt, newest first, ready for st.dataframe."""
    rows = [{
        "Name": r.user_name,
        "Admission No.": r.admission_number,
        "Branch": r.branch,
        "Score": f"{r.score}/{r.total_questions}",
        "Percentage": r.percentage,
        "Grade": grade_for(r.percentage),
        "Time Spent": format_countdown(r.time_spent),
        "Status": r.status,
        "Completed": r.completed_at,
    } for r in results]
    df = pd.DataFrame(rows, columns=[
        "Name", "Admission No.", "Branch", "Score", "Percentage",
        "Grade", "Time Spent", "Status", "Completed",
    ])
    if not df.empty:
        df = df.sort_values("Completed", ascending=False).reset_index(drop=True)
    return df


def category_breakdown(result: TestResult, questions: Sequence[Question]) -> pd.DataFrame:
    by_id = {a.question_id: a for a in result.answers}
    rows = []
    for q in questions:
        answer = by_id.get(q.id)
        rows.append({
            "category": q.category,
            "correct": int(bool(answer and answer.is_correct)),
            "answered": int(bool(answer and answer.selected_answer != UNANSWERED)),
        })
    df = pd.DataFrame(rows, columns=["category", "correct", "answered"])
    summary = df.groupby("category", sort=False).agg(
        questions=("correct", "size"),
        answered=("answered", "sum"),
        correct=("correct", "sum"),
    ).reset_index()
    return summary
