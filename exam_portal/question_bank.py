from typing import Dict, List, Optional, Tuple

from .schemas import Question

# Reference configuration: identical for every candidate and every session.
_RAW_QUESTIONS: List[dict] = [
    {
        "id": "1",
        "question": "What is the primary purpose of a recruitment test?",
        "options": [
            "To evaluate technical skills",
            "To assess overall competency and fit",
            "To test memory capacity",
            "To check attendance",
        ],
        "correctAnswer": 1,
        "category": "General",
    },
    {
        "id": "2",
        "question": "Which programming paradigm focuses on objects and classes?",
        "options": [
            "Functional Programming",
            "Procedural Programming",
            "Object-Oriented Programming",
            "Logic Programming",
        ],
        "correctAnswer": 2,
        "category": "Technical",
    },
    {
        "id": "3",
        "question": "What does HTML stand for?",
        "options": [
            "Hyper Text Markup Language",
            "High Tech Modern Language",
            "Home Tool Markup Language",
            "Hyperlink and Text Markup Language",
        ],
        "correctAnswer": 0,
        "category": "Technical",
    },
    {
        "id": "4",
        "question": "Which of the following is a version control system?",
        "options": ["MySQL", "Git", "Apache", "Node.js"],
        "correctAnswer": 1,
        "category": "Technical",
    },
    {
        "id": "5",
        "question": "What is the time complexity of binary search?",
        "options": ["O(n)", "O(log n)", "O(n²)", "O(1)"],
        "correctAnswer": 1,
        "category": "Technical",
    },
    {
        "id": "6",
        "question": "Which HTTP method is used to retrieve data?",
        "options": ["POST", "PUT", "GET", "DELETE"],
        "correctAnswer": 2,
        "category": "Technical",
    },
    {
        "id": "7",
        "question": "What does CSS stand for?",
        "options": [
            "Computer Style Sheets",
            "Cascading Style Sheets",
            "Creative Style Sheets",
            "Colorful Style Sheets",
        ],
        "correctAnswer": 1,
        "category": "Technical",
    },
    {
        "id": "8",
        "question": "Which data structure follows LIFO principle?",
        "options": ["Queue", "Array", "Stack", "Linked List"],
        "correctAnswer": 2,
        "category": "Technical",
    },
    {
        "id": "9",
        "question": "What is the purpose of a database index?",
        "options": [
            "To store data",
            "To improve query performance",
            "To backup data",
            "To encrypt data",
        ],
        "correctAnswer": 1,
        "category": "Technical",
    },
    {
        "id": "10",
        "question": "Which of the following is NOT a JavaScript framework?",
        "options": ["React", "Angular", "Vue.js", "Laravel"],
        "correctAnswer": 3,
        "category": "Technical",
    },
]

_QUESTIONS: Tuple[Question, ...] = tuple(Question.model_validate(q) for q in _RAW_QUESTIONS)
_BY_ID: Dict[str, Question] = {q.id: q for q in _QUESTIONS}


def get_questions() -> Tuple[Question, ...]:
    return _QUESTIONS


def get_question(question_id: str) -> Optional[Question]:
    return _BY_ID.get(question_id)


def categories() -> List[str]:
    """Category labels in first-seen order."""
    seen: List[str] = []
    for q in _QUESTIONS:
        if q.category not in seen:
            seen.append(q.category)
    return seen
