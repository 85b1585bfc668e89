"""Winner notifications.

Delivery is best effort: a failed email or SMS is logged and counted but
never raised, because the quarter result is already committed by the time
anything is sent.
"""
from typing import Dict

from flask import current_app

from squarespool.models import User


class Notifier:
    """Delivery backend. Concrete transports override both methods."""

    def send_email(self, to: str, subject: str, body: str, priority: bool = False) -> None:
        raise NotImplementedError

    def send_sms(self, to: str, body: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes every message to the application log instead of sending it."""

    def send_email(self, to, subject, body, priority=False):
        flag = ' [priority]' if priority else ''
        current_app.logger.info(f"[notify] email to={to}{flag} subject={subject!r}")

    def send_sms(self, to, body):
        current_app.logger.info(f"[notify] sms to={to} body={body!r}")


_BACKENDS = {
    'log': LoggingNotifier,
}


def build_notifier(backend: str) -> Notifier:
    try:
        return _BACKENDS[backend]()
    except KeyError:
        raise ValueError(f'Unknown notifier backend {backend!r}')


def get_notifier() -> Notifier:
    notifier = current_app.extensions.get('pool_notifier')
    if notifier is None:
        notifier = build_notifier(current_app.config.get('NOTIFIER_BACKEND', 'log'))
        current_app.extensions['pool_notifier'] = notifier
    return notifier


def _winner_lines(winner):
    label = 'Final' if winner.quarter == 4 else f'Q{winner.quarter}'
    if winner.is_overtime:
        label = 'Final (OT)'
    score = f'AFC {winner.afc_score} - NFC {winner.nfc_score}'
    cell = f'row {winner.row_number} / col {winner.col_number}'
    return label, score, cell


def dispatch_quarter_winner(winner) -> Dict[str, int]:
    """Tell the owner first, then everyone who opted in. Returns send counts."""
    notifier = get_notifier()
    sent = failed = 0
    label, score, cell = _winner_lines(winner)
    prize = f'${winner.prize_amount:,.2f}' if winner.prize_amount is not None else 'the prize'
    owner = winner.owner

    def _send(kind, fn, *args, **kwargs):
        nonlocal sent, failed
        try:
            fn(*args, **kwargs)
            sent += 1
        except Exception:
            failed += 1
            current_app.logger.exception(f"[notify] {kind} to {args[0]} failed for {label}")

    if owner is not None:
        subject = f'You won {label}!'
        body = f'{score}. Your square ({cell}) wins {prize}.'
        _send('email', notifier.send_email, owner.email, subject, body, priority=True)
        if owner.notify_sms and owner.phone:
            _send('sms', notifier.send_sms, owner.phone, f'Squares pool: {subject} {body}')
        winner_text = f'{owner.name} wins {prize}'
    else:
        winner_text = 'Nobody owns the winning square'

    recipients = User.query.filter(User.notify_quarter_wins.is_(True))
    if owner is not None:
        recipients = recipients.filter(User.id != owner.id)
    for user in recipients.all():
        _send('email', notifier.send_email, user.email, f'{label} result', f'{score} ({cell}). {winner_text}.')

    current_app.logger.info(f"[notify] {label} sent={sent} failed={failed}")
    return {'sent': sent, 'failed': failed}
