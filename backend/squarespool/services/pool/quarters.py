"""What happens to the game clock when a quarter is closed out."""
import enum

REGULATION_QUARTERS = 4
OVERTIME_QUARTER = 5
QUARTER_CLOCK = '15:00'
OVERTIME_CLOCK = '10:00'


class Transition(enum.Enum):
    NEXT_QUARTER = 'next_quarter'
    HALFTIME = 'halftime'
    OVERTIME = 'overtime'
    FINAL = 'final'


def quarter_end_transition(quarter: int, afc_score: int, nfc_score: int) -> Transition:
    if quarter >= REGULATION_QUARTERS:
        if afc_score == nfc_score:
            return Transition.OVERTIME
        return Transition.FINAL
    if quarter == 2:
        return Transition.HALFTIME
    return Transition.NEXT_QUARTER


def settlement_slot(quarter: int) -> int:
    """Winner record key for a quarter. Overtime reuses the final (Q4) slot."""
    if quarter < 1:
        raise ValueError('Quarter has not started')
    return min(quarter, REGULATION_QUARTERS)
