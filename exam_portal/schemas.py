from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

OPTIONS_PER_QUESTION = 4
UNANSWERED = -1

ResultStatus = Literal["completed", "in-progress", "abandoned"]


class Document(BaseModel):
    """Base for records stored by the document collaborator (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Identity ---
class Principal(BaseModel):
    uid: str
    email: str
    token: Optional[str] = None


class CandidateProfile(Document):
    id: str
    name: str
    email: str
    phone: str
    admission_number: str
    branch: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Test content ---
class Question(Document):
    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    options: List[str]
    correct_answer: int
    category: str

    @model_validator(mode="after")
    def _check_options(self):
        if len(self.options) != OPTIONS_PER_QUESTION:
            raise ValueError(f"question {self.id} needs exactly {OPTIONS_PER_QUESTION} options")
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(f"question {self.id} has correct answer out of range")
        return self


class Answer(Document):
    question_id: str
    selected_answer: int = UNANSWERED
    is_correct: bool = False


# --- Outcomes ---
class TestResult(Document):
    __test__ = False

    id: Optional[str] = None
    user_id: str
    user_name: str
    user_email: str
    admission_number: str
    branch: str
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)
    time_spent: int = Field(0, ge=0)
    answers: List[Answer] = Field(default_factory=list)
    completed_at: datetime
    status: ResultStatus = "completed"


class UserTestStatus(Document):
    user_id: str
    has_submitted: bool = False
    submission_date: Optional[datetime] = None
    tab_switch_count: int = 0
    is_test_cancelled: bool = False
    last_activity: Optional[datetime] = None
