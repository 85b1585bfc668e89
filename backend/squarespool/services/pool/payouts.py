"""Typed access to the admin-editable settings table."""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict

from flask import current_app

from squarespool import db
from squarespool.errors import PayoutConfigError, ValidationError
from squarespool.models import Setting

LAUNCHED_KEY = 'tournament_launched'
PRICE_KEY = 'square_price'
PRIZE_KEYS = ('prize_q1', 'prize_q2', 'prize_q3', 'prize_q4')
MONEY_KEYS = (PRICE_KEY,) + PRIZE_KEYS


@dataclass(frozen=True)
class PayoutTable:
    q1: Decimal
    q2: Decimal
    q3: Decimal
    q4: Decimal

    def for_quarter(self, quarter: int) -> Decimal:
        if quarter not in (1, 2, 3, 4):
            raise ValueError(f'No payout for quarter {quarter}')
        return getattr(self, f'q{quarter}')

    @property
    def total(self) -> Decimal:
        return self.q1 + self.q2 + self.q3 + self.q4

    def to_dict(self):
        return {
            'q1': float(self.q1),
            'q2': float(self.q2),
            'q3': float(self.q3),
            'q4': float(self.q4),
            'total': float(self.total),
        }


def parse_money(key: str, raw) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise PayoutConfigError(f'Setting {key} must be a number', key=key, value=raw)
    if not value.is_finite() or value < 0:
        raise PayoutConfigError(f'Setting {key} must be a non-negative amount', key=key, value=raw)
    return value.quantize(Decimal('0.01'))


def _settings_map() -> Dict[str, str]:
    return {s.key: s.value for s in Setting.query.all()}


def _config_default(key: str):
    return current_app.config.get(key.upper())


def load_payout_table() -> PayoutTable:
    values = _settings_map()
    amounts = []
    for key in PRIZE_KEYS:
        raw = values.get(key, _config_default(key))
        if raw is None:
            raise PayoutConfigError(f'Setting {key} is not configured', key=key)
        amounts.append(parse_money(key, raw))
    return PayoutTable(*amounts)


def load_square_price() -> Decimal:
    setting = db.session.get(Setting, PRICE_KEY)
    raw = setting.value if setting else _config_default(PRICE_KEY)
    if raw is None:
        raise PayoutConfigError(f'Setting {PRICE_KEY} is not configured', key=PRICE_KEY)
    return parse_money(PRICE_KEY, raw)


def is_launched() -> bool:
    setting = db.session.get(Setting, LAUNCHED_KEY)
    return bool(setting and setting.value == 'true')


def ensure_setting(key: str, default: str) -> Setting:
    """Insert a setting row if missing (does not commit)."""
    setting = db.session.get(Setting, key)
    if setting is None:
        setting = Setting(key=key, value=default)
        db.session.add(setting)
        db.session.flush()
    return setting


def seed_settings(config) -> None:
    ensure_setting(PRICE_KEY, str(config.get('SQUARE_PRICE', '50')))
    for key in PRIZE_KEYS:
        ensure_setting(key, str(config.get(key.upper(), '0')))
    ensure_setting(LAUNCHED_KEY, 'false')


def list_settings() -> Dict[str, object]:
    values = _settings_map()
    return {
        'square_price': float(load_square_price()),
        'payouts': load_payout_table().to_dict(),
        'tournament_launched': values.get(LAUNCHED_KEY) == 'true',
    }


def update_settings(changes: Dict[str, object]) -> Dict[str, object]:
    """Validate and store admin edits. All keys are applied or none are."""
    if not changes:
        raise ValidationError('No settings provided')
    parsed = {}
    for key, raw in changes.items():
        if key == LAUNCHED_KEY:
            raise ValidationError('tournament_launched can only be set by launching the grid')
        if key not in MONEY_KEYS:
            raise ValidationError(f'Unknown setting {key}', key=key)
        try:
            parsed[key] = str(parse_money(key, raw))
        except PayoutConfigError as exc:
            raise ValidationError(exc.message, **exc.extra)
    try:
        for key, value in parsed.items():
            ensure_setting(key, value).value = value
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"[settings] updated {sorted(parsed)}")
    return list_settings()
