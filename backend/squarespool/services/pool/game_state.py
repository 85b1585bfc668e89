from dataclasses import dataclass
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from squarespool import db
from squarespool.errors import StaleStateError, ValidationError
from squarespool.models import (
    GamePhase,
    GameState,
    GridSquare,
    QuarterWinner,
    ScoreHistory,
    utcnow,
)
from squarespool.socketio_events import broadcast
from .notifications import dispatch_quarter_winner
from .payouts import load_payout_table
from .quarters import (
    OVERTIME_CLOCK,
    OVERTIME_QUARTER,
    QUARTER_CLOCK,
    Transition,
    quarter_end_transition,
    settlement_slot,
)
from .settlement import Settlement, settle

EDITABLE_FIELDS = (
    'afc_team', 'nfc_team', 'afc_score', 'nfc_score', 'quarter',
    'clock', 'phase', 'possession', 'last_play',
)


@dataclass
class QuarterOutcome:
    winner: QuarterWinner
    transition: Transition
    state: GameState

    def to_dict(self):
        return {
            'winner': self.winner.to_dict(),
            'transition': self.transition.value,
            'game_state': self.state.to_dict(),
        }


def get_game_state() -> GameState:
    state = GameState.query.order_by(GameState.id).first()
    if state is None:
        state = GameState()
        db.session.add(state)
        db.session.commit()
    return state


def _commit():
    try:
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        current_app.logger.info(f"[game] concurrent write rejected: {exc.__class__.__name__}")
        raise StaleStateError()
    except Exception:
        db.session.rollback()
        raise


def _check_version(state: GameState, expected_version) -> None:
    if expected_version is None:
        return
    try:
        expected = int(expected_version)
    except (TypeError, ValueError):
        raise ValidationError('expected_version must be an integer')
    if state.version != expected:
        raise StaleStateError(current_version=state.version)


def _non_negative_int(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer')
    if value < 0:
        raise ValidationError(f'{field} must be non-negative')
    return value


def _clean_changes(changes: Dict) -> Dict:
    unknown = set(changes) - set(EDITABLE_FIELDS) - {'description'}
    if unknown:
        raise ValidationError(f'Unknown game state fields: {sorted(unknown)}')
    cleaned = {}
    for field in ('afc_score', 'nfc_score'):
        if field in changes:
            cleaned[field] = _non_negative_int(field, changes[field])
    if 'quarter' in changes:
        quarter = _non_negative_int('quarter', changes['quarter'])
        if quarter > OVERTIME_QUARTER:
            raise ValidationError('quarter must be between 0 and 5')
        cleaned['quarter'] = quarter
    if 'phase' in changes:
        try:
            cleaned['phase'] = GamePhase(changes['phase'])
        except ValueError:
            raise ValidationError(f"Unknown phase {changes['phase']!r}")
    for field in ('afc_team', 'nfc_team'):
        if field in changes:
            name = str(changes[field] or '').strip()
            if not name:
                raise ValidationError(f'{field} cannot be empty')
            cleaned[field] = name[:64]
    if 'clock' in changes:
        cleaned['clock'] = str(changes['clock'])[:16]
    for field in ('possession', 'last_play'):
        if field in changes:
            cleaned[field] = changes[field] or None
    return cleaned


def _record_score(state: GameState, description=None, scoring_type='manual') -> None:
    db.session.add(ScoreHistory(
        afc_score=state.afc_score,
        nfc_score=state.nfc_score,
        quarter=state.quarter,
        clock=state.clock,
        description=description,
        scoring_type=scoring_type,
    ))


def update_game_state(changes: Dict, expected_version=None, updated_by=None) -> GameState:
    """Manual admin edit. Last write wins unless ``expected_version`` is given."""
    cleaned = _clean_changes(changes or {})
    if not cleaned:
        raise ValidationError('No game state changes provided')
    state = get_game_state()
    _check_version(state, expected_version)

    before = (state.afc_score, state.nfc_score)
    for field, value in cleaned.items():
        setattr(state, field, value)
    after = (state.afc_score, state.nfc_score)
    if after != before:
        if after[0] < before[0] or after[1] < before[1]:
            current_app.logger.warning(f"[game] score decreased {before} -> {after}")
        _record_score(state, description=changes.get('description'))
    state.source = 'manual'
    state.updated_by = updated_by
    _commit()
    current_app.logger.info(f"[game] manual update {sorted(cleaned)} version={state.version}")
    broadcast('game_state', state.to_dict())
    return state


def start_game(updated_by=None) -> GameState:
    state = get_game_state()
    if state.phase != GamePhase.PRE_GAME:
        raise ValidationError('Game has already started', phase=state.phase.value)
    state.phase = GamePhase.LIVE
    state.quarter = 1
    state.clock = QUARTER_CLOCK
    state.source = 'manual'
    state.updated_by = updated_by
    _commit()
    current_app.logger.info("[game] kickoff")
    broadcast('game_state', state.to_dict())
    return state


def resume_play(updated_by=None) -> GameState:
    state = get_game_state()
    if state.phase != GamePhase.HALFTIME:
        raise ValidationError('Game is not at halftime', phase=state.phase.value)
    state.phase = GamePhase.LIVE
    state.quarter += 1
    state.clock = QUARTER_CLOCK
    state.updated_by = updated_by
    _commit()
    current_app.logger.info(f"[game] second half underway q={state.quarter}")
    broadcast('game_state', state.to_dict())
    return state


def reset_game(updated_by=None) -> GameState:
    """Back to pre-game: clears scores, quarter winners and score history."""
    state = get_game_state()
    QuarterWinner.query.delete()
    ScoreHistory.query.delete()
    state.afc_score = 0
    state.nfc_score = 0
    state.quarter = 0
    state.clock = QUARTER_CLOCK
    state.phase = GamePhase.PRE_GAME
    state.possession = None
    state.last_play = None
    state.source = 'manual'
    state.updated_by = updated_by
    _commit()
    current_app.logger.info("[game] reset to pre-game")
    broadcast('game_state', state.to_dict())
    return state


def _upsert_winner(slot: int, result: Settlement, state: GameState, prize, is_overtime: bool) -> QuarterWinner:
    winner = QuarterWinner.query.filter_by(quarter=slot).first()
    if winner is None:
        winner = QuarterWinner(quarter=slot)
        db.session.add(winner)
    winner.square_id = result.square_id
    winner.owner_id = result.owner_id
    winner.row_number = result.row_number
    winner.col_number = result.col_number
    winner.afc_score = state.afc_score
    winner.nfc_score = state.nfc_score
    winner.prize_amount = prize
    winner.is_overtime = is_overtime
    winner.announced_at = utcnow()
    return winner


def _apply_transition(state: GameState, transition: Transition) -> None:
    if transition == Transition.HALFTIME:
        state.phase = GamePhase.HALFTIME
        state.clock = '0:00'
    elif transition == Transition.OVERTIME:
        state.phase = GamePhase.OVERTIME
        state.quarter = OVERTIME_QUARTER
        state.clock = OVERTIME_CLOCK
    elif transition == Transition.FINAL:
        state.phase = GamePhase.FINAL
        state.clock = '0:00'
    else:
        state.phase = GamePhase.LIVE
        state.quarter += 1
        state.clock = QUARTER_CLOCK


def end_quarter(expected_quarter=None, updated_by=None) -> QuarterOutcome:
    """Settle the running quarter and move the game clock on.

    The winner upsert and the state transition share one commit, so a failed
    write leaves both untouched. Ending regulation tied writes a provisional
    Q4 record that the overtime result later overwrites.
    """
    state = get_game_state()
    if state.phase not in (GamePhase.LIVE, GamePhase.OVERTIME):
        raise ValidationError('No quarter in progress', phase=state.phase.value)
    if expected_quarter is not None:
        try:
            expected = int(expected_quarter)
        except (TypeError, ValueError):
            raise ValidationError('expected_quarter must be an integer')
        if expected != state.quarter:
            raise StaleStateError('Quarter already ended', current_quarter=state.quarter)

    quarter = state.quarter
    slot = settlement_slot(quarter)
    payouts = load_payout_table()
    result = settle(state.afc_score, state.nfc_score, GridSquare.query.all())
    transition = quarter_end_transition(quarter, state.afc_score, state.nfc_score)
    if result.square is None:
        current_app.logger.info(
            f"[quarter-end] q={quarter} cell ({result.row_number},{result.col_number}) has no owner"
        )

    winner = _upsert_winner(slot, result, state, payouts.for_quarter(slot), is_overtime=quarter > 4)
    _apply_transition(state, transition)
    state.source = 'manual'
    state.updated_by = updated_by
    _commit()

    current_app.logger.info(
        f"[quarter-end] q={quarter} slot={slot} score={winner.afc_score}-{winner.nfc_score} "
        f"owner={winner.owner_id} prize={winner.prize_amount} next={transition.value}"
    )
    broadcast('game_state', state.to_dict())
    broadcast('quarter_winner', winner.to_dict())
    if transition != Transition.OVERTIME:
        dispatch_quarter_winner(winner)
    return QuarterOutcome(winner=winner, transition=transition, state=state)


def current_leader() -> Dict:
    state = get_game_state()
    result = settle(state.afc_score, state.nfc_score, GridSquare.query.all())
    return {'leader': result.to_dict(), 'game_state': state.to_dict()}


def list_winners() -> List[QuarterWinner]:
    return QuarterWinner.query.order_by(QuarterWinner.quarter).all()


def score_history() -> List[ScoreHistory]:
    return ScoreHistory.query.order_by(ScoreHistory.id).all()


def apply_feed_snapshot(snapshot) -> Optional[GameState]:
    """Copy a score-feed reading into the game state (last write wins).

    Only spectator fields follow the feed: teams, scores, possession and last
    play, plus the clock while the feed is on the same quarter. Quarter and
    phase move through ``start_game``/``end_quarter``/``resume_play`` so every
    quarter gets settled before the game moves past it.
    """
    for attempt in (1, 2):
        state = get_game_state()
        moved = (state.afc_score, state.nfc_score) != (snapshot.afc_score, snapshot.nfc_score)
        if snapshot.afc_team:
            state.afc_team = snapshot.afc_team[:64]
        if snapshot.nfc_team:
            state.nfc_team = snapshot.nfc_team[:64]
        state.afc_score = snapshot.afc_score
        state.nfc_score = snapshot.nfc_score
        if snapshot.quarter == state.quarter and snapshot.phase == state.phase:
            state.clock = snapshot.clock[:16]
        elif attempt == 1:
            current_app.logger.info(
                f"[score-feed] feed at q={snapshot.quarter} phase={snapshot.phase.value}, "
                f"pool at q={state.quarter} phase={state.phase.value}; waiting for the admin"
            )
        state.possession = snapshot.possession
        state.last_play = snapshot.last_play
        state.source = 'feed'
        state.updated_by = None
        if moved:
            _record_score(state, description=snapshot.last_play, scoring_type='feed')
        try:
            _commit()
        except StaleStateError:
            if attempt == 2:
                raise
            current_app.logger.info("[score-feed] state changed underneath the sync, re-applying")
            continue
        broadcast('game_state', state.to_dict())
        return state
