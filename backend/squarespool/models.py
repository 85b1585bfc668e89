from squarespool import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import enum


def utcnow():
    return datetime.now(timezone.utc)


def _enum(enum_cls, length=16):
    # Store the lowercase values rather than member names
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def _money(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value else None


class SquareStatus(enum.Enum):
    AVAILABLE = 'available'
    PAID = 'paid'
    CONFIRMED = 'confirmed'

    @property
    def is_sold(self):
        return self in (SquareStatus.PAID, SquareStatus.CONFIRMED)


class GamePhase(enum.Enum):
    PRE_GAME = 'pre_game'
    LIVE = 'live'
    HALFTIME = 'halftime'
    OVERTIME = 'overtime'
    FINAL = 'final'


class PaymentStatus(enum.Enum):
    COMPLETED = 'completed'
    CONFIRMED = 'confirmed'
    CONFLICT = 'conflict'  # money taken but squares were gone; needs a refund


class AnswerType(enum.Enum):
    YES_NO = 'yes_no'
    OVER_UNDER = 'over_under'
    MULTIPLE_CHOICE = 'multiple_choice'
    EXACT_NUMBER = 'exact_number'


class PropStatus(enum.Enum):
    DRAFT = 'draft'
    OPEN = 'open'
    LOCKED = 'locked'
    GRADED = 'graded'


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    # Buyers created by the payment webhook have no password until they set one
    password_hash = db.Column(db.String(256), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    notify_quarter_wins = db.Column(db.Boolean, default=True, nullable=False)
    notify_sms = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    squares = db.relationship('GridSquare', back_populates='owner')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'is_admin': self.is_admin,
            'notify_quarter_wins': self.notify_quarter_wins,
            'notify_sms': self.notify_sms,
        }


class Payment(db.Model):
    __tablename__ = 'payment'
    id = db.Column(db.Integer, primary_key=True)
    payment_ref = db.Column(db.String(255), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    method = db.Column(db.String(16), nullable=False, default='stripe')  # stripe, venmo, manual
    status = db.Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship('User')
    squares = db.relationship('GridSquare', back_populates='payment')

    def to_dict(self):
        return {
            'id': self.id,
            'payment_ref': self.payment_ref,
            'user_id': self.user_id,
            'amount': _money(self.amount),
            'method': self.method,
            'status': self.status.value,
            'square_ids': sorted(sq.id for sq in self.squares),
            'created_at': _iso(self.created_at),
        }


class GridSquare(db.Model):
    __tablename__ = 'grid_square'
    __table_args__ = (
        db.UniqueConstraint('row_index', 'col_index', name='uq_grid_square_cell'),
        db.CheckConstraint('row_index BETWEEN 0 AND 9', name='ck_grid_square_row_index'),
        db.CheckConstraint('col_index BETWEEN 0 AND 9', name='ck_grid_square_col_index'),
    )
    id = db.Column(db.Integer, primary_key=True)
    row_index = db.Column(db.Integer, nullable=False)
    col_index = db.Column(db.Integer, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    status = db.Column(_enum(SquareStatus), nullable=False, default=SquareStatus.AVAILABLE, index=True)
    # Drawn once at launch, then fixed
    row_number = db.Column(db.Integer, nullable=True)
    col_number = db.Column(db.Integer, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payment.id'), nullable=True)

    owner = db.relationship('User', back_populates='squares')
    payment = db.relationship('Payment', back_populates='squares')

    def to_dict(self):
        return {
            'id': self.id,
            'row_index': self.row_index,
            'col_index': self.col_index,
            'row_number': self.row_number,
            'col_number': self.col_number,
            'status': self.status.value,
            'owner_id': self.owner_id,
            'owner_name': self.owner.name if self.owner else None,
        }


class Setting(db.Model):
    __tablename__ = 'setting'
    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(255), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class GameState(db.Model):
    """The single live game record. ``version`` is bumped on every flush."""
    __tablename__ = 'game_state'
    id = db.Column(db.Integer, primary_key=True)
    afc_team = db.Column(db.String(64), nullable=False, default='AFC')
    nfc_team = db.Column(db.String(64), nullable=False, default='NFC')
    afc_score = db.Column(db.Integer, nullable=False, default=0)
    nfc_score = db.Column(db.Integer, nullable=False, default=0)
    quarter = db.Column(db.Integer, nullable=False, default=0)  # 0 pre-game, 1-4, 5 overtime
    clock = db.Column(db.String(16), nullable=False, default='15:00')
    phase = db.Column(_enum(GamePhase), nullable=False, default=GamePhase.PRE_GAME)
    possession = db.Column(db.String(64), nullable=True)
    last_play = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(16), nullable=False, default='manual')  # manual, feed
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    @property
    def is_live(self):
        return self.phase in (GamePhase.LIVE, GamePhase.OVERTIME)

    @property
    def is_halftime(self):
        return self.phase == GamePhase.HALFTIME

    @property
    def is_final(self):
        return self.phase == GamePhase.FINAL

    def to_dict(self):
        return {
            'afc_team': self.afc_team,
            'nfc_team': self.nfc_team,
            'afc_score': self.afc_score,
            'nfc_score': self.nfc_score,
            'quarter': self.quarter,
            'clock': self.clock,
            'phase': self.phase.value,
            'is_live': self.is_live,
            'is_halftime': self.is_halftime,
            'is_final': self.is_final,
            'possession': self.possession,
            'last_play': self.last_play,
            'source': self.source,
            'version': self.version,
            'updated_at': _iso(self.updated_at),
        }


class ScoreHistory(db.Model):
    __tablename__ = 'score_history'
    id = db.Column(db.Integer, primary_key=True)
    afc_score = db.Column(db.Integer, nullable=False)
    nfc_score = db.Column(db.Integer, nullable=False)
    quarter = db.Column(db.Integer, nullable=False)
    clock = db.Column(db.String(16), nullable=True)
    description = db.Column(db.Text, nullable=True)
    scoring_type = db.Column(db.String(16), nullable=False, default='manual')  # manual, feed
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'afc_score': self.afc_score,
            'nfc_score': self.nfc_score,
            'quarter': self.quarter,
            'clock': self.clock,
            'description': self.description,
            'scoring_type': self.scoring_type,
            'created_at': _iso(self.created_at),
        }


class QuarterWinner(db.Model):
    __tablename__ = 'quarter_winner'
    id = db.Column(db.Integer, primary_key=True)
    quarter = db.Column(db.Integer, unique=True, nullable=False)  # 1-4; overtime settles slot 4
    square_id = db.Column(db.Integer, db.ForeignKey('grid_square.id'), nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    row_number = db.Column(db.Integer, nullable=False)
    col_number = db.Column(db.Integer, nullable=False)
    afc_score = db.Column(db.Integer, nullable=False)
    nfc_score = db.Column(db.Integer, nullable=False)
    prize_amount = db.Column(db.Numeric(10, 2), nullable=True)
    is_overtime = db.Column(db.Boolean, default=False, nullable=False)
    announced_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    square = db.relationship('GridSquare')
    owner = db.relationship('User')

    def to_dict(self):
        return {
            'quarter': self.quarter,
            'square_id': self.square_id,
            'owner_id': self.owner_id,
            'owner_name': self.owner.name if self.owner else None,
            'row_number': self.row_number,
            'col_number': self.col_number,
            'afc_score': self.afc_score,
            'nfc_score': self.nfc_score,
            'prize_amount': _money(self.prize_amount),
            'is_overtime': self.is_overtime,
            'announced_at': _iso(self.announced_at),
        }


class PropBet(db.Model):
    __tablename__ = 'prop_bet'
    id = db.Column(db.Integer, primary_key=True)
    question = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    answer_type = db.Column(_enum(AnswerType), nullable=False)
    line = db.Column(db.Float, nullable=True)  # over/under line
    unit = db.Column(db.String(32), nullable=True)
    options = db.Column(db.JSON, nullable=True)  # multiple_choice options
    point_value = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(_enum(PropStatus), nullable=False, default=PropStatus.DRAFT)
    correct_answer = db.Column(db.String(255), nullable=True)
    result_value = db.Column(db.Float, nullable=True)
    result_notes = db.Column(db.Text, nullable=True)
    graded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    graded_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    answers = db.relationship('PropAnswer', back_populates='prop', cascade='all, delete-orphan')

    def to_dict(self, include_result=True):
        payload = {
            'id': self.id,
            'question': self.question,
            'description': self.description,
            'answer_type': self.answer_type.value,
            'line': self.line,
            'unit': self.unit,
            'options': self.options,
            'point_value': self.point_value,
            'status': self.status.value,
            'display_order': self.display_order,
        }
        if include_result and self.status == PropStatus.GRADED:
            payload.update({
                'correct_answer': self.correct_answer,
                'result_value': self.result_value,
                'result_notes': self.result_notes,
                'graded_at': _iso(self.graded_at),
            })
        return payload


class PropAnswer(db.Model):
    __tablename__ = 'prop_answer'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'prop_id', name='uq_prop_answer_user_prop'),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    prop_id = db.Column(db.Integer, db.ForeignKey('prop_bet.id'), nullable=False, index=True)
    answer = db.Column(db.String(255), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=True)  # None until graded
    is_push = db.Column(db.Boolean, nullable=False, default=False)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    prop = db.relationship('PropBet', back_populates='answers')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'prop_id': self.prop_id,
            'answer': self.answer,
            'is_correct': self.is_correct,
            'is_push': self.is_push,
            'points_earned': self.points_earned,
            'submitted_at': _iso(self.submitted_at),
        }
