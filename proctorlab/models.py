"""
Data models for labs, assessments and submissions.

Provides type-safe structures for Question, TestCase, Assessment,
LabExperiment and the two submission records. Records convert to and from
the camelCase JSON documents stored by the backend.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple


MCQ = "mcq"
CODING = "coding"
QUESTION_KINDS = (MCQ, CODING)

DIFFICULTIES = ("Beginner", "Intermediate", "Advanced")


@dataclass
class TestCase:
    """Represents a single stdin/stdout test case."""
    __test__ = False  # not a pytest class

    id: str
    input: str = ""
    expected_output: str = ""
    hidden: bool = False

    @staticmethod
    def from_dict(data: dict) -> 'TestCase':
        """Create a TestCase object from a dictionary."""
        return TestCase(
            id=str(data['id']),
            input=data.get('input') or "",
            expected_output=data.get('expectedOutput') or "",
            hidden=bool(data.get('isHidden', False))
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "input": self.input,
            "expectedOutput": self.expected_output,
            "isHidden": self.hidden,
        }


@dataclass
class Question:
    """
    One assessment item.

    Multiple-choice questions carry `options` and `correct_option_index`;
    coding questions carry `starter_code` and `test_cases`.
    """
    id: str
    kind: str
    text: str
    points: float
    category: str = ""
    difficulty: str = "Beginner"
    title: Optional[str] = None
    options: List[str] = field(default_factory=list)
    correct_option_index: Optional[int] = None
    starter_code: str = ""
    test_cases: List[TestCase] = field(default_factory=list)

    @property
    def is_mcq(self) -> bool:
        return self.kind == MCQ

    @property
    def is_coding(self) -> bool:
        return self.kind == CODING

    @staticmethod
    def from_dict(data: dict) -> 'Question':
        """Create a Question object from a dictionary."""
        kind = data['type']
        if kind not in QUESTION_KINDS:
            raise ValueError(f"Unknown question type: {kind}")

        correct = data.get('correctOptionIndex')
        return Question(
            id=str(data['id']),
            kind=kind,
            text=data.get('text', ""),
            points=float(data.get('points', 0)),
            category=data.get('category', ""),
            difficulty=data.get('difficulty', "Beginner"),
            title=data.get('title'),
            options=list(data.get('options') or []),
            correct_option_index=int(correct) if correct is not None else None,
            starter_code=data.get('starterCode') or "",
            test_cases=[TestCase.from_dict(t) for t in data.get('testCases') or []]
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.kind,
            "text": self.text,
            "category": self.category,
            "difficulty": self.difficulty,
            "points": self.points,
        }
        if self.title is not None:
            data["title"] = self.title
        if self.is_mcq:
            data["options"] = list(self.options)
            data["correctOptionIndex"] = self.correct_option_index
        else:
            data["starterCode"] = self.starter_code
            data["testCases"] = [t.to_dict() for t in self.test_cases]
        return data


@dataclass
class Assessment:
    """
    A published (or draft) proctored assessment.

    Attributes:
        question_bank: Full bank of questions; each attempt sees a random sample
        random_mcq_count: Number of multiple-choice questions per attempt
        random_coding_count: Number of coding questions per attempt
        duration_minutes: Time allowed for one attempt
    """
    id: str
    title: str
    duration_minutes: int
    question_bank: List[Question]
    random_mcq_count: int
    random_coding_count: int
    description: str = ""
    target_classes: List[str] = field(default_factory=list)
    status: str = "draft"
    deadline: Optional[int] = None

    @staticmethod
    def from_dict(data: dict) -> 'Assessment':
        """Create an Assessment object from a dictionary."""
        return Assessment(
            id=str(data['id']),
            title=data['title'],
            duration_minutes=int(data['durationMinutes']),
            question_bank=[Question.from_dict(q) for q in data.get('questionBank') or []],
            random_mcq_count=int(data.get('randomMcqCount') or 0),
            random_coding_count=int(data.get('randomCodingCount') or 0),
            description=data.get('description', ""),
            target_classes=list(data.get('targetGrades') or []),
            status=data.get('status', "draft"),
            deadline=data.get('deadline')
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "targetGrades": list(self.target_classes),
            "questionBank": [q.to_dict() for q in self.question_bank],
            "randomMcqCount": self.random_mcq_count,
            "randomCodingCount": self.random_coding_count,
            "durationMinutes": self.duration_minutes,
            "status": self.status,
            "deadline": self.deadline,
        }

    @property
    def mcq_questions(self) -> List[Question]:
        return [q for q in self.question_bank if q.is_mcq]

    @property
    def coding_questions(self) -> List[Question]:
        return [q for q in self.question_bank if q.is_coding]

    def validate(self) -> Tuple[bool, str]:
        """
        Validate the authoring-time constraints of the assessment.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.random_mcq_count < 0 or self.random_coding_count < 0:
            return False, "Random question counts must be non-negative"

        if self.duration_minutes < 1:
            return False, "Duration must be at least 1 minute"

        mcq_available = len(self.mcq_questions)
        if self.random_mcq_count > mcq_available:
            return False, f"randomMcqCount ({self.random_mcq_count}) exceeds MCQ questions in bank ({mcq_available})"

        coding_available = len(self.coding_questions)
        if self.random_coding_count > coding_available:
            return False, f"randomCodingCount ({self.random_coding_count}) exceeds coding questions in bank ({coding_available})"

        if self.random_mcq_count + self.random_coding_count == 0:
            return False, "Assessment draws no questions"

        seen = set()
        for question in self.question_bank:
            if question.id in seen:
                return False, f"Duplicate question id: {question.id}"
            seen.add(question.id)
            if question.is_mcq:
                index = question.correct_option_index
                if index is None or not 0 <= index < len(question.options):
                    return False, f"Question {question.id}: correct option index out of range"

        return True, ""


@dataclass
class LabExperiment:
    """A single-attempt coding lab."""
    id: str
    title: str
    starter_code: str
    test_cases: List[TestCase]
    description: str = ""
    category: str = ""
    difficulty: str = "Beginner"
    learning_objectives: List[str] = field(default_factory=list)
    target_classes: List[str] = field(default_factory=list)
    solution_hint: Optional[str] = None
    status: str = "draft"
    deadline: Optional[int] = None

    @staticmethod
    def from_dict(data: dict) -> 'LabExperiment':
        """Create a LabExperiment object from a dictionary."""
        return LabExperiment(
            id=str(data['id']),
            title=data['title'],
            starter_code=data.get('starterCode') or "",
            test_cases=[TestCase.from_dict(t) for t in data.get('testCases') or []],
            description=data.get('description', ""),
            category=data.get('category', ""),
            difficulty=data.get('difficulty', "Beginner"),
            learning_objectives=list(data.get('learningObjectives') or []),
            target_classes=list(data.get('targetGrades') or []),
            solution_hint=data.get('solutionHint'),
            status=data.get('status', "draft"),
            deadline=data.get('deadline')
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "difficulty": self.difficulty,
            "description": self.description,
            "learningObjectives": list(self.learning_objectives),
            "starterCode": self.starter_code,
            "testCases": [t.to_dict() for t in self.test_cases],
            "targetGrades": list(self.target_classes),
            "solutionHint": self.solution_hint,
            "status": self.status,
            "deadline": self.deadline,
        }


@dataclass
class AssessmentSubmission:
    """Final record of one student's assessment attempt."""
    assessment_id: str
    user_id: str
    class_id: str
    answers: Dict[str, Any]
    score: float
    total_points: float
    submitted_at: int
    user_name: str = ""
    status: str = "completed"

    @property
    def record_key(self) -> Tuple[str, str]:
        """Upsert key: one record per (user, assessment)."""
        return (self.user_id, self.assessment_id)

    @staticmethod
    def from_dict(data: dict) -> 'AssessmentSubmission':
        """Create an AssessmentSubmission object from a dictionary."""
        return AssessmentSubmission(
            assessment_id=data['assessmentId'],
            user_id=data['userId'],
            class_id=data.get('classId', ""),
            answers=dict(data.get('answers') or {}),
            score=float(data.get('score', 0)),
            total_points=float(data.get('totalPoints', 0)),
            submitted_at=int(data.get('submittedAt', 0)),
            user_name=data.get('userName', ""),
            status=data.get('status', "completed")
        )

    def to_dict(self) -> dict:
        return {
            "assessmentId": self.assessment_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "classId": self.class_id,
            "answers": dict(self.answers),
            "score": self.score,
            "totalPoints": self.total_points,
            "submittedAt": self.submitted_at,
            "status": self.status,
        }


@dataclass
class Submission:
    """Latest saved solution of one student for one lab."""
    lab_id: str
    class_id: str
    user_id: str
    code: str
    status: str
    submitted_at: int
    user_name: str = ""
    feedback: Optional[str] = None
    points_awarded: Optional[float] = None

    @property
    def record_key(self) -> Tuple[str, str]:
        """Upsert key: one record per (user, lab)."""
        return (self.user_id, self.lab_id)

    @staticmethod
    def from_dict(data: dict) -> 'Submission':
        """Create a Submission object from a dictionary."""
        return Submission(
            lab_id=data['labId'],
            class_id=data.get('classId', ""),
            user_id=data['userId'],
            code=data.get('code', ""),
            status=data.get('status', "pending"),
            submitted_at=int(data.get('submittedAt', 0)),
            user_name=data.get('userName', ""),
            feedback=data.get('feedback'),
            points_awarded=data.get('pointsAwarded')
        )

    def to_dict(self) -> dict:
        data = {
            "labId": self.lab_id,
            "classId": self.class_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "code": self.code,
            "status": self.status,
            "submittedAt": self.submitted_at,
        }
        if self.feedback is not None:
            data["feedback"] = self.feedback
        if self.points_awarded is not None:
            data["pointsAwarded"] = self.points_awarded
        return data
