"""Winning-square lookup.

A square wins when its row number equals the last digit of the AFC score and
its column number equals the last digit of the NFC score. Only sold squares
can win; an unsold cell settles to "no winner".
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from squarespool.models import SquareStatus


@dataclass(frozen=True)
class Settlement:
    row_number: int
    col_number: int
    square: Optional[object] = None

    @property
    def square_id(self) -> Optional[int]:
        return getattr(self.square, 'id', None)

    @property
    def owner_id(self) -> Optional[int]:
        return getattr(self.square, 'owner_id', None)

    def to_dict(self):
        owner = getattr(self.square, 'owner', None)
        return {
            'row_number': self.row_number,
            'col_number': self.col_number,
            'square_id': self.square_id,
            'owner_id': self.owner_id,
            'owner_name': getattr(owner, 'name', None),
        }


def score_digits(afc_score: int, nfc_score: int):
    if afc_score < 0 or nfc_score < 0:
        raise ValueError('Scores must be non-negative')
    return afc_score % 10, nfc_score % 10


def _is_sold(square) -> bool:
    status = square.status
    if isinstance(status, str):
        status = SquareStatus(status)
    return status.is_sold


def determine_winner(afc_score: int, nfc_score: int, squares: Iterable):
    """Return the sold square matching the score's last digits, or None.

    None covers both numbers not yet drawn and a matching cell that was
    never sold.
    """
    afc_digit, nfc_digit = score_digits(afc_score, nfc_score)
    for square in squares:
        if square.row_number == afc_digit and square.col_number == nfc_digit and _is_sold(square):
            return square
    return None


def settle(afc_score: int, nfc_score: int, squares: Iterable) -> Settlement:
    afc_digit, nfc_digit = score_digits(afc_score, nfc_score)
    return Settlement(
        row_number=afc_digit,
        col_number=nfc_digit,
        square=determine_winner(afc_score, nfc_score, squares),
    )
