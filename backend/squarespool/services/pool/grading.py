from dataclasses import dataclass
from typing import Optional

from squarespool.errors import GradingError, ValidationError
from squarespool.models import AnswerType

OVER = 'over'
UNDER = 'under'
YES_NO = ('yes', 'no')


@dataclass(frozen=True)
class Grade:
    is_correct: bool
    is_push: bool
    points_earned: int


def _normalize(value) -> str:
    return str(value).strip().lower()


def normalize_answer(prop, answer) -> str:
    """Validate a participant's answer against the prop's answer type."""
    if answer is None or not str(answer).strip():
        raise ValidationError('Answer is required')
    text = str(answer).strip()
    answer_type = prop.answer_type
    if answer_type == AnswerType.OVER_UNDER:
        if _normalize(text) not in (OVER, UNDER):
            raise ValidationError("Answer must be 'over' or 'under'")
        return _normalize(text)
    if answer_type == AnswerType.YES_NO:
        if _normalize(text) not in YES_NO:
            raise ValidationError("Answer must be 'yes' or 'no'")
        return _normalize(text)
    if answer_type == AnswerType.MULTIPLE_CHOICE:
        for option in prop.options or []:
            if _normalize(option) == _normalize(text):
                return option
        raise ValidationError('Answer must be one of the listed options', options=prop.options or [])
    if answer_type == AnswerType.EXACT_NUMBER:
        try:
            float(text)
        except ValueError:
            raise ValidationError('Answer must be a number')
        return text
    raise ValidationError(f'Unsupported answer type {answer_type}')


def grade_answer(prop, answer: str, correct_answer: Optional[str] = None,
                 actual_value: Optional[float] = None) -> Grade:
    if prop.answer_type == AnswerType.OVER_UNDER:
        if actual_value is None:
            raise GradingError('Actual value is required to grade an over/under prop')
        if prop.line is None:
            raise GradingError('Over/under prop has no line')
        actual = float(actual_value)
        line = float(prop.line)
        if actual == line:
            # push: neither side wins
            return Grade(is_correct=False, is_push=True, points_earned=0)
        choice = _normalize(answer)
        is_correct = (choice == OVER and actual > line) or (choice == UNDER and actual < line)
    else:
        if correct_answer is None or not str(correct_answer).strip():
            raise GradingError('Correct answer is required to grade this prop')
        is_correct = _normalize(answer) == _normalize(correct_answer)
    return Grade(
        is_correct=is_correct,
        is_push=False,
        points_earned=prop.point_value if is_correct else 0,
    )
