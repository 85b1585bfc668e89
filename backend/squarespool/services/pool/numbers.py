import random
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from squarespool.errors import AlreadyLaunchedError, ValidationError

DIGITS = tuple(range(10))


class SquareNumbers(NamedTuple):
    square_id: Optional[int]
    row_index: int
    col_index: int
    row_number: int
    col_number: int


def draw_digits(rng: Optional[random.Random] = None) -> List[int]:
    """Uniform random ordering of 0-9 (Fisher-Yates via random.shuffle)."""
    digits = list(DIGITS)
    (rng or random).shuffle(digits)
    return digits


def _check_permutation(digits: Sequence[int], axis: str) -> List[int]:
    digits = [int(d) for d in digits]
    if sorted(digits) != list(DIGITS):
        raise ValidationError(f'{axis} digits must be a permutation of 0-9', digits=digits)
    return digits


def number_squares(squares: Iterable, row_digits: Sequence[int], col_digits: Sequence[int]) -> List[SquareNumbers]:
    rows = _check_permutation(row_digits, 'Row')
    cols = _check_permutation(col_digits, 'Column')
    return [
        SquareNumbers(
            square_id=getattr(sq, 'id', None),
            row_index=sq.row_index,
            col_index=sq.col_index,
            row_number=rows[sq.row_index],
            col_number=cols[sq.col_index],
        )
        for sq in squares
    ]


def assign_numbers(squares: Sequence, rng: Optional[random.Random] = None) -> List[SquareNumbers]:
    """Draw row and column numbers for every square.

    Returns new records and leaves the inputs untouched. Refuses a grid that
    already carries numbers so earlier settlements can never be reshuffled.
    """
    if any(sq.row_number is not None or sq.col_number is not None for sq in squares):
        raise AlreadyLaunchedError()
    row_digits = draw_digits(rng)
    col_digits = draw_digits(rng)
    return number_squares(squares, row_digits, col_digits)


def axis_digits(squares: Iterable) -> Tuple[Optional[List[int]], Optional[List[int]]]:
    """Recover the row/column labels (index -> number), or None before launch."""
    rows = [None] * 10
    cols = [None] * 10
    for sq in squares:
        if sq.row_number is not None:
            rows[sq.row_index] = sq.row_number
        if sq.col_number is not None:
            cols[sq.col_index] = sq.col_number
    return (
        rows if None not in rows else None,
        cols if None not in cols else None,
    )
