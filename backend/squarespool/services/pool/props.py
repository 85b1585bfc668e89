from collections import defaultdict
from typing import Dict, List, Optional

from flask import current_app

from squarespool import db
from squarespool.errors import GradingError, NotFoundError, ValidationError
from squarespool.models import AnswerType, PropAnswer, PropBet, PropStatus, User, utcnow
from squarespool.socketio_events import broadcast
from .grading import grade_answer, normalize_answer

# allowed manual status moves; graded is only reachable through grade_prop
STATUS_MOVES = {
    PropStatus.DRAFT: {PropStatus.OPEN},
    PropStatus.OPEN: {PropStatus.LOCKED, PropStatus.DRAFT},
    PropStatus.LOCKED: {PropStatus.OPEN},
    PropStatus.GRADED: set(),
}


def _commit():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _apply_fields(prop: PropBet, data: Dict) -> None:
    if 'question' in data:
        question = (data.get('question') or '').strip()
        if not question:
            raise ValidationError('Question is required')
        prop.question = question[:500]
    if 'answer_type' in data:
        try:
            prop.answer_type = AnswerType(data['answer_type'])
        except ValueError:
            raise ValidationError(f"Unknown answer type {data['answer_type']!r}")
    for field in ('description', 'unit'):
        if field in data:
            setattr(prop, field, data[field] or None)
    if 'line' in data:
        try:
            prop.line = float(data['line']) if data['line'] is not None else None
        except (TypeError, ValueError):
            raise ValidationError('line must be a number')
    if 'options' in data:
        options = data['options']
        if options is not None and (
            not isinstance(options, list) or not all(isinstance(o, str) and o.strip() for o in options)
        ):
            raise ValidationError('options must be a list of strings')
        prop.options = [o.strip() for o in options] if options else None
    for field in ('point_value', 'display_order'):
        if field in data:
            try:
                value = int(data[field])
            except (TypeError, ValueError):
                raise ValidationError(f'{field} must be an integer')
            if field == 'point_value' and value < 0:
                raise ValidationError('point_value must be non-negative')
            setattr(prop, field, value)

    if prop.answer_type == AnswerType.OVER_UNDER and prop.line is None:
        raise ValidationError('Over/under props need a line')
    if prop.answer_type == AnswerType.MULTIPLE_CHOICE and len(prop.options or []) < 2:
        raise ValidationError('Multiple choice props need at least two options')


def create_prop(data: Dict) -> PropBet:
    if not data or not data.get('question') or not data.get('answer_type'):
        raise ValidationError('question and answer_type are required')
    prop = PropBet(status=PropStatus.DRAFT, point_value=1, display_order=0)
    _apply_fields(prop, data)
    db.session.add(prop)
    _commit()
    current_app.logger.info(f"[props] created prop={prop.id} type={prop.answer_type.value}")
    return prop


def get_prop(prop_id: int) -> PropBet:
    prop = db.session.get(PropBet, prop_id)
    if prop is None:
        raise NotFoundError('Prop not found', prop_id=prop_id)
    return prop


def update_prop(prop_id: int, data: Dict) -> PropBet:
    prop = get_prop(prop_id)
    if prop.status == PropStatus.GRADED:
        raise ValidationError('Graded props cannot be edited')
    _apply_fields(prop, data or {})
    _commit()
    broadcast('props_update', {'prop': prop.to_dict()})
    return prop


def set_prop_status(prop_id: int, status) -> PropBet:
    prop = get_prop(prop_id)
    try:
        target = PropStatus(status)
    except ValueError:
        raise ValidationError(f'Unknown prop status {status!r}')
    if target not in STATUS_MOVES[prop.status]:
        raise ValidationError(
            f'Cannot move prop from {prop.status.value} to {target.value}',
            status=prop.status.value,
        )
    prop.status = target
    _commit()
    current_app.logger.info(f"[props] prop={prop.id} -> {target.value}")
    broadcast('props_update', {'prop': prop.to_dict()})
    return prop


def list_props(include_drafts: bool = False) -> List[PropBet]:
    query = PropBet.query
    if not include_drafts:
        query = query.filter(PropBet.status != PropStatus.DRAFT)
    return query.order_by(PropBet.display_order, PropBet.id).all()


def submit_answer(user: User, prop_id: int, answer) -> PropAnswer:
    """Record or replace a participant's answer while the prop is open."""
    prop = get_prop(prop_id)
    if prop.status != PropStatus.OPEN:
        raise ValidationError('This prop is not accepting answers', status=prop.status.value)
    value = normalize_answer(prop, answer)
    existing = PropAnswer.query.filter_by(user_id=user.id, prop_id=prop.id).first()
    if existing is None:
        existing = PropAnswer(user_id=user.id, prop_id=prop.id, answer=value)
        db.session.add(existing)
    else:
        existing.answer = value
        existing.submitted_at = utcnow()
    _commit()
    return existing


def answers_for_user(user: User) -> List[PropAnswer]:
    return PropAnswer.query.filter_by(user_id=user.id).order_by(PropAnswer.prop_id).all()


def grade_prop(prop_id: int, correct_answer: Optional[str] = None, actual_value=None,
               result_notes: Optional[str] = None, graded_by: Optional[int] = None) -> PropBet:
    """Grade every answer for a prop in a single transaction."""
    prop = get_prop(prop_id)
    if prop.status == PropStatus.GRADED:
        raise GradingError('Prop has already been graded')
    if prop.status == PropStatus.DRAFT:
        raise GradingError('Draft props cannot be graded')

    if actual_value is not None:
        try:
            actual_value = float(actual_value)
        except (TypeError, ValueError):
            raise GradingError('actual_value must be a number')
    if prop.answer_type == AnswerType.OVER_UNDER:
        if actual_value is None:
            raise GradingError('Actual value is required to grade an over/under prop')
    elif correct_answer is None or not str(correct_answer).strip():
        raise GradingError('Correct answer is required to grade this prop')
    else:
        correct_answer = normalize_answer(prop, correct_answer)

    counts = defaultdict(int)
    try:
        for answer in prop.answers:
            grade = grade_answer(prop, answer.answer, correct_answer, actual_value)
            answer.is_correct = grade.is_correct
            answer.is_push = grade.is_push
            answer.points_earned = grade.points_earned
            counts['push' if grade.is_push else ('correct' if grade.is_correct else 'wrong')] += 1
        if prop.answer_type == AnswerType.OVER_UNDER and correct_answer is None:
            if actual_value == prop.line:
                correct_answer = 'push'
            else:
                correct_answer = 'over' if actual_value > prop.line else 'under'
        prop.correct_answer = correct_answer
        prop.result_value = actual_value
        prop.result_notes = result_notes
        prop.status = PropStatus.GRADED
        prop.graded_at = utcnow()
        prop.graded_by = graded_by
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        f"[grade] prop={prop.id} answer={prop.correct_answer} value={prop.result_value} "
        f"correct={counts['correct']} wrong={counts['wrong']} push={counts['push']}"
    )
    broadcast('props_update', {'prop': prop.to_dict()})
    return prop


def props_leaderboard() -> List[Dict]:
    rows = (
        db.session.query(PropAnswer, User)
        .join(User, PropAnswer.user_id == User.id)
        .all()
    )
    board = {}
    for answer, user in rows:
        entry = board.setdefault(user.id, {
            'user_id': user.id,
            'name': user.name,
            'total_answers': 0,
            'correct_answers': 0,
            'incorrect_answers': 0,
            'push_answers': 0,
            'pending_answers': 0,
            'total_points': 0,
        })
        entry['total_answers'] += 1
        entry['total_points'] += answer.points_earned or 0
        if answer.is_push:
            entry['push_answers'] += 1
        elif answer.is_correct is None:
            entry['pending_answers'] += 1
        elif answer.is_correct:
            entry['correct_answers'] += 1
        else:
            entry['incorrect_answers'] += 1

    for entry in board.values():
        graded = entry['correct_answers'] + entry['incorrect_answers']
        entry['accuracy_percentage'] = round(entry['correct_answers'] * 100 / graded) if graded else 0

    return sorted(
        board.values(),
        key=lambda e: (-e['total_points'], -e['correct_answers'], -e['accuracy_percentage'], e['name']),
    )
