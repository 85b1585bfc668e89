import hashlib
import hmac
import json

from flask import Blueprint, current_app, jsonify, request

from squarespool.errors import SquareUnavailableError
from squarespool.services.pool.grid import record_payment

webhooks = Blueprint('webhooks', __name__)

SIGNATURE_HEADER = 'X-Pool-Signature'
COMPLETED_EVENT = 'payment.completed'


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


@webhooks.route('/payments', methods=['POST'])
def payment_completed():
    secret = current_app.config.get('PAYMENT_WEBHOOK_SECRET')
    if not secret:
        return jsonify({'error': 'Payment webhook is not configured'}), 503

    body = request.get_data()
    signature = request.headers.get(SIGNATURE_HEADER, '')
    if not hmac.compare_digest(sign_payload(secret, body), signature):
        current_app.logger.warning("[webhook] rejected payment event with a bad signature")
        return jsonify({'error': 'Invalid signature'}), 401

    try:
        event = json.loads(body or b'{}')
    except ValueError:
        return jsonify({'error': 'Body must be JSON'}), 400
    if not isinstance(event, dict):
        return jsonify({'error': 'Body must be a JSON object'}), 400

    if event.get('type', COMPLETED_EVENT) != COMPLETED_EVENT:
        return jsonify({'received': True, 'ignored': event.get('type')})

    data = event.get('data') or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Event data must be a JSON object'}), 400
    try:
        payment, created = record_payment(
            data.get('payment_ref'),
            data.get('payer'),
            data.get('square_ids'),
            data.get('amount', 0),
            method=data.get('method') or 'stripe',
        )
    except SquareUnavailableError as exc:
        payload = exc.to_dict()
        payload['payment_status'] = 'conflict'
        return jsonify(payload), exc.status_code

    if not created:
        return jsonify({'received': True, 'already_processed': True, 'payment': payment.to_dict()})
    return jsonify({'received': True, 'already_processed': False, 'payment': payment.to_dict()}), 201
