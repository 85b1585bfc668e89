from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from squarespool import db
from squarespool.errors import (
    AlreadyLaunchedError,
    NotFoundError,
    SquareUnavailableError,
    ValidationError,
)
from squarespool.models import (
    GridSquare,
    Payment,
    PaymentStatus,
    Setting,
    SquareStatus,
    User,
    utcnow,
)
from squarespool.socketio_events import broadcast
from .numbers import assign_numbers, axis_digits
from .payouts import LAUNCHED_KEY, ensure_setting, is_launched, load_payout_table, load_square_price

GRID_SIZE = 10
SQUARE_COUNT = GRID_SIZE * GRID_SIZE
PAYMENT_METHODS = ('stripe', 'venmo', 'manual')


def seed_grid() -> int:
    """Create the 100 cells if the grid is empty. Returns how many were added."""
    if GridSquare.query.count():
        return 0
    for row in range(GRID_SIZE):
        for col in range(GRID_SIZE):
            db.session.add(GridSquare(row_index=row, col_index=col))
    db.session.flush()
    return SQUARE_COUNT


def list_squares() -> List[GridSquare]:
    return GridSquare.query.order_by(GridSquare.row_index, GridSquare.col_index).all()


def squares_for_user(user) -> List[GridSquare]:
    return (
        GridSquare.query.filter_by(owner_id=user.id)
        .order_by(GridSquare.row_index, GridSquare.col_index)
        .all()
    )


def _clean_ids(square_ids) -> List[int]:
    if not square_ids or not isinstance(square_ids, (list, tuple)):
        raise ValidationError('At least one square must be selected')
    try:
        ids = [int(i) for i in square_ids]
    except (TypeError, ValueError):
        raise ValidationError('Square ids must be integers')
    if len(set(ids)) != len(ids):
        raise ValidationError('Duplicate square ids')
    return ids


def purchase_squares(user, square_ids, payment: Optional[Payment] = None, commit: bool = True) -> List[GridSquare]:
    """Claim available squares for ``user``.

    Each square flips only if it is still available; if any of them was
    taken in the meantime the whole purchase is rolled back.
    """
    ids = _clean_ids(square_ids)
    found = {sq_id for (sq_id,) in db.session.query(GridSquare.id).filter(GridSquare.id.in_(ids))}
    missing = set(ids) - found
    if missing:
        raise NotFoundError('Unknown squares', square_ids=sorted(missing))

    result = db.session.execute(
        update(GridSquare)
        .where(GridSquare.id.in_(ids), GridSquare.status == SquareStatus.AVAILABLE)
        .values(
            owner_id=user.id,
            status=SquareStatus.PAID,
            paid_at=utcnow(),
            payment_id=payment.id if payment is not None else None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(ids):
        db.session.rollback()
        taken = [
            sq_id for (sq_id,) in db.session.query(GridSquare.id).filter(
                GridSquare.id.in_(ids), GridSquare.status != SquareStatus.AVAILABLE
            )
        ]
        current_app.logger.info(f"[purchase] conflict user={user.id} requested={ids} taken={taken}")
        raise SquareUnavailableError(taken or ids)

    if commit:
        db.session.commit()
        broadcast('grid_update', {'square_ids': ids, 'status': SquareStatus.PAID.value})
    current_app.logger.info(f"[purchase] user={user.id} squares={ids}")
    squares = GridSquare.query.filter(GridSquare.id.in_(ids)).order_by(GridSquare.id).all()
    for sq in squares:
        db.session.refresh(sq)
    return squares


def reassign_square(square_id: int, owner_id: Optional[int]) -> GridSquare:
    """Admin override: free a square, or hand it to a user as confirmed."""
    square = db.session.get(GridSquare, square_id)
    if square is None:
        raise NotFoundError('Square not found', square_id=square_id)
    if owner_id is None:
        square.owner = None
        square.status = SquareStatus.AVAILABLE
        square.paid_at = None
        square.payment = None
    else:
        owner = db.session.get(User, owner_id)
        if owner is None:
            raise NotFoundError('User not found', user_id=owner_id)
        square.owner = owner
        square.status = SquareStatus.CONFIRMED
        square.paid_at = utcnow()
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"[admin] square={square.id} owner={owner_id} status={square.status.value}")
    broadcast('grid_update', {'square_ids': [square.id], 'status': square.status.value})
    return square


def confirm_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError('Payment not found', payment_id=payment_id)
    if payment.status == PaymentStatus.CONFLICT:
        raise ValidationError('Payment has no squares to confirm; refund it instead')
    square_ids = []
    for square in payment.squares:
        if square.status == SquareStatus.PAID:
            square.status = SquareStatus.CONFIRMED
            square_ids.append(square.id)
    payment.status = PaymentStatus.CONFIRMED
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"[admin] payment={payment.id} confirmed squares={square_ids}")
    if square_ids:
        broadcast('grid_update', {'square_ids': square_ids, 'status': SquareStatus.CONFIRMED.value})
    return payment


def list_payments() -> List[Payment]:
    return Payment.query.order_by(Payment.created_at.desc()).all()


def _parse_amount(raw) -> Decimal:
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError('Amount must be a number')
    if not amount.is_finite() or amount < 0:
        raise ValidationError('Amount must be non-negative')
    return amount.quantize(Decimal('0.01'))


def find_or_create_user(email: str, name: Optional[str] = None, phone: Optional[str] = None) -> User:
    email = (email or '').strip().lower()
    if not email:
        raise ValidationError('Payer email is required')
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=(name or email.split('@')[0]).strip()[:80], phone=phone or None)
        db.session.add(user)
        db.session.flush()
    elif phone and not user.phone:
        user.phone = phone
    return user


def record_payment(payment_ref: str, payer: Dict, square_ids: Iterable[int], amount, method: str = 'stripe'):
    """Apply a completed payment. Returns ``(payment, created)``.

    Duplicate deliveries of the same ``payment_ref`` return the stored payment
    with ``created=False`` and change nothing.
    """
    if not payment_ref or not isinstance(payment_ref, str):
        raise ValidationError('payment_ref is required')
    if method not in PAYMENT_METHODS:
        raise ValidationError(f'Unknown payment method {method}')
    existing = Payment.query.filter_by(payment_ref=payment_ref).first()
    if existing is not None:
        current_app.logger.info(f"[webhook] payment {payment_ref} already processed, skipping")
        return existing, False

    ids = _clean_ids(square_ids)
    value = _parse_amount(amount)
    payer = payer or {}
    if not isinstance(payer, dict):
        raise ValidationError('payer must be an object')
    user = find_or_create_user(payer.get('email'), payer.get('name'), payer.get('phone'))
    payment = Payment(payment_ref=payment_ref, user=user, amount=value, method=method)

    try:
        db.session.add(payment)
        db.session.flush()
        purchase_squares(user, ids, payment=payment, commit=False)
        db.session.commit()
    except SquareUnavailableError:
        # Keep the money on record so an admin can refund it
        user = find_or_create_user(payer.get('email'), payer.get('name'), payer.get('phone'))
        db.session.add(Payment(
            payment_ref=payment_ref, user=user, amount=value, method=method,
            status=PaymentStatus.CONFLICT,
        ))
        db.session.commit()
        current_app.logger.warning(f"[webhook] payment {payment_ref} could not claim squares {ids}; marked conflict")
        raise
    except IntegrityError:
        # Same payment delivered concurrently; the other delivery won
        db.session.rollback()
        existing = Payment.query.filter_by(payment_ref=payment_ref).first()
        if existing is None:
            raise
        return existing, False
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"[webhook] payment {payment_ref} user={user.id} squares={ids} amount={value}")
    broadcast('grid_update', {'square_ids': ids, 'status': SquareStatus.PAID.value})
    return payment, True


def launch_grid(rng=None, force: bool = False) -> Dict:
    """Draw the row/column numbers exactly once.

    The ``tournament_launched`` setting is flipped with a conditional update
    in the same transaction as the numbers, so of two concurrent launches
    only one can commit; the other gets ``AlreadyLaunchedError``.
    """
    squares = list_squares()
    if len(squares) != SQUARE_COUNT:
        raise ValidationError(
            f'Grid is not properly initialized. Expected {SQUARE_COUNT} squares.',
            square_count=len(squares),
        )
    if is_launched():
        raise AlreadyLaunchedError()

    sold_count = sum(1 for sq in squares if sq.status.is_sold)
    require_full = current_app.config.get('REQUIRE_FULL_GRID_TO_LAUNCH', True)
    if sold_count < SQUARE_COUNT and require_full and not force:
        raise ValidationError(
            f'Cannot launch tournament. Only {sold_count} of {SQUARE_COUNT} squares are sold. '
            'All squares must be sold before numbers can be assigned.',
            sold_count=sold_count,
            required_count=SQUARE_COUNT,
        )

    try:
        ensure_setting(LAUNCHED_KEY, 'false')
        claimed = db.session.execute(
            update(Setting)
            .where(Setting.key == LAUNCHED_KEY, Setting.value != 'true')
            .values(value='true', updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise AlreadyLaunchedError()
        for square, numbers in zip(squares, assign_numbers(squares, rng)):
            square.row_number = numbers.row_number
            square.col_number = numbers.col_number
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    row_digits, col_digits = axis_digits(squares)
    forced = sold_count < SQUARE_COUNT
    current_app.logger.info(
        f"[launch] numbers drawn rows={row_digits} cols={col_digits} sold={sold_count} forced={forced}"
    )
    payload = {
        'launched': True,
        'row_digits': row_digits,
        'col_digits': col_digits,
        'sold_count': sold_count,
        'forced': forced,
    }
    broadcast('grid_update', payload)
    return payload


def pool_summary() -> Dict:
    squares = list_squares()
    sold_count = sum(1 for sq in squares if sq.status.is_sold)
    revenue = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status.in_([PaymentStatus.COMPLETED, PaymentStatus.CONFIRMED]))
        .scalar()
    )
    row_digits, col_digits = axis_digits(squares)
    return {
        'square_count': len(squares),
        'sold_count': sold_count,
        'available_count': len(squares) - sold_count,
        'revenue': float(revenue or 0),
        'square_price': float(load_square_price()),
        'payouts': load_payout_table().to_dict(),
        'launched': is_launched(),
        'row_digits': row_digits,
        'col_digits': col_digits,
    }
