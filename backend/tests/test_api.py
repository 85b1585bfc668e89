import json

import pytest

from conftest import FakeRng, WEBHOOK_SECRET, login, make_user, sell_all_squares
from squarespool import db
from squarespool.api.webhooks import SIGNATURE_HEADER, sign_payload
from squarespool.errors import AlreadyLaunchedError
from squarespool.models import GridSquare, Payment, PaymentStatus, Setting, SquareStatus, User
from squarespool.services.pool import grid as grid_service


def _post_payment(client, data, secret=WEBHOOK_SECRET, event_type='payment.completed'):
    body = json.dumps({'type': event_type, 'data': data}).encode('utf-8')
    return client.post(
        '/api/webhooks/payments',
        data=body,
        content_type='application/json',
        headers={SIGNATURE_HEADER: sign_payload(secret, body)},
    )


def test_grid_is_seeded_with_100_available_squares(client):
    res = client.get('/api/squares')
    assert res.status_code == 200
    squares = res.get_json()['squares']
    assert len(squares) == 100
    assert {(sq['row_index'], sq['col_index']) for sq in squares} == {(r, c) for r in range(10) for c in range(10)}
    assert all(sq['status'] == 'available' and sq['row_number'] is None for sq in squares)


def test_register_login_and_check(client):
    res = client.post('/register', json={'email': 'Bob@Example.com', 'password': 'pw', 'name': 'Bob'})
    assert res.status_code == 201
    assert res.get_json()['user']['email'] == 'bob@example.com'
    assert client.get('/check_login').get_json()['user']['name'] == 'Bob'
    client.post('/logout')
    assert client.get('/check_login').status_code == 401
    res = client.post('/login', json={'email': 'bob@example.com', 'password': 'wrong'})
    assert res.status_code == 401


def test_purchase_requires_login(client):
    res = client.post('/api/squares/purchase', json={'square_ids': [1]})
    assert res.status_code == 401


def test_purchase_claims_available_squares(user_client):
    res = user_client.post('/api/squares/purchase', json={'square_ids': [1, 2]})
    assert res.status_code == 201
    squares = res.get_json()['squares']
    assert [sq['status'] for sq in squares] == ['paid', 'paid']
    assert all(sq['owner_name'] == 'Alice' for sq in squares)
    mine = user_client.get('/api/squares/mine').get_json()['squares']
    assert [sq['id'] for sq in mine] == [1, 2]


def test_purchase_conflict_rolls_back_whole_request(flask_app, user_client):
    assert user_client.post('/api/squares/purchase', json={'square_ids': [2]}).status_code == 201

    make_user('bob@example.com', 'Bob')
    bob = login(flask_app.test_client(), 'bob@example.com')
    res = bob.post('/api/squares/purchase', json={'square_ids': [2, 3]})
    assert res.status_code == 409
    assert res.get_json()['square_ids'] == [2]

    db.session.expire_all()
    assert db.session.get(GridSquare, 3).status == SquareStatus.AVAILABLE
    assert db.session.get(GridSquare, 2).owner.name == 'Alice'


def test_purchase_validates_input(user_client):
    assert user_client.post('/api/squares/purchase', json={'square_ids': []}).status_code == 400
    assert user_client.post('/api/squares/purchase', json={'square_ids': [1, 1]}).status_code == 400
    res = user_client.post('/api/squares/purchase', json={'square_ids': [999]})
    assert res.status_code == 404
    assert res.get_json()['square_ids'] == [999]


def test_admin_routes_reject_regular_users(user_client, client):
    assert user_client.post('/api/admin/launch').status_code == 403
    assert client.post('/api/admin/launch').status_code == 401


def test_launch_refused_until_grid_sold(admin_client, user_client):
    user_client.post('/api/squares/purchase', json={'square_ids': [1, 2, 3]})
    res = admin_client.post('/api/admin/launch')
    assert res.status_code == 400
    body = res.get_json()
    assert body['sold_count'] == 3
    assert body['required_count'] == 100
    grid = admin_client.get('/api/squares').get_json()['squares']
    assert all(sq['row_number'] is None for sq in grid)


def test_launch_draws_numbers_once(admin_client, alice):
    sell_all_squares(alice)
    res = admin_client.post('/api/admin/launch')
    assert res.status_code == 200
    body = res.get_json()
    assert sorted(body['row_digits']) == list(range(10))
    assert sorted(body['col_digits']) == list(range(10))
    assert body['forced'] is False

    grid = admin_client.get('/api/squares').get_json()['squares']
    for sq in grid:
        assert sq['row_number'] == body['row_digits'][sq['row_index']]
        assert sq['col_number'] == body['col_digits'][sq['col_index']]

    again = admin_client.post('/api/admin/launch')
    assert again.status_code == 409
    grid_after = admin_client.get('/api/squares').get_json()['squares']
    assert grid_after == grid


def test_launch_loses_race_when_flag_already_flipped(flask_app, alice, monkeypatch):
    sell_all_squares(alice)
    # another writer committed the flag between our check and our update
    monkeypatch.setattr(grid_service, 'is_launched', lambda: False)
    flag = db.session.get(Setting, 'tournament_launched')
    flag.value = 'true'
    db.session.commit()
    with pytest.raises(AlreadyLaunchedError):
        grid_service.launch_grid(rng=FakeRng(range(10), range(10)))
    db.session.expire_all()
    assert all(sq.row_number is None for sq in GridSquare.query.all())


def test_launch_with_fixed_draw(flask_app, alice):
    sell_all_squares(alice)
    result = grid_service.launch_grid(rng=FakeRng(range(10), range(9, -1, -1)))
    assert result['row_digits'] == list(range(10))
    assert result['col_digits'] == list(range(9, -1, -1))
    assert db.session.get(Setting, 'tournament_launched').value == 'true'


def test_forced_launch_with_unsold_squares(admin_client, user_client):
    user_client.post('/api/squares/purchase', json={'square_ids': [5]})
    res = admin_client.post('/api/admin/launch', json={'force': True})
    assert res.status_code == 200
    assert res.get_json()['forced'] is True
    assert res.get_json()['sold_count'] == 1


def test_launch_without_full_grid_when_config_allows(flask_app, admin_client):
    flask_app.config['REQUIRE_FULL_GRID_TO_LAUNCH'] = False
    assert admin_client.post('/api/admin/launch').status_code == 200


def test_admin_reassigns_and_frees_square(admin_client, alice):
    res = admin_client.post('/api/admin/squares/10', json={'owner_id': alice.id})
    assert res.status_code == 200
    assert res.get_json()['status'] == 'confirmed'
    assert res.get_json()['owner_name'] == 'Alice'

    res = admin_client.post('/api/admin/squares/10', json={'owner_id': None})
    assert res.get_json()['status'] == 'available'
    assert res.get_json()['owner_id'] is None

    assert admin_client.post('/api/admin/squares/10', json={}).status_code == 400
    assert admin_client.post('/api/admin/squares/10', json={'owner_id': 9999}).status_code == 404


def test_settings_are_validated_all_or_nothing(admin_client):
    settings = admin_client.get('/api/admin/settings').get_json()
    assert settings['payouts'] == {'q1': 1000.0, 'q2': 1000.0, 'q3': 1000.0, 'q4': 2000.0, 'total': 5000.0}
    assert settings['square_price'] == 50.0

    res = admin_client.put('/api/admin/settings', json={'prize_q1': '1500', 'prize_q2': 'lots'})
    assert res.status_code == 400
    assert admin_client.get('/api/admin/settings').get_json()['payouts']['q1'] == 1000.0

    assert admin_client.put('/api/admin/settings', json={'prize_q3': -5}).status_code == 400
    assert admin_client.put('/api/admin/settings', json={'tournament_launched': 'true'}).status_code == 400
    assert admin_client.put('/api/admin/settings', json={'favorite_team': 'x'}).status_code == 400

    res = admin_client.put('/api/admin/settings', json={'prize_q1': '1500', 'square_price': 25})
    assert res.status_code == 200
    assert res.get_json()['payouts']['q1'] == 1500.0
    assert res.get_json()['square_price'] == 25.0


def test_corrupt_payout_setting_is_reported(admin_client):
    db.session.get(Setting, 'prize_q2').value = 'abc'
    db.session.commit()
    res = admin_client.get('/api/admin/settings')
    assert res.status_code == 500
    assert res.get_json()['key'] == 'prize_q2'


def test_payment_webhook_creates_buyer_and_claims_squares(client):
    res = _post_payment(client, {
        'payment_ref': 'pi_123',
        'payer': {'email': 'Carol@example.com', 'name': 'Carol', 'phone': '+15550002'},
        'square_ids': [11, 12],
        'amount': '100.00',
    })
    assert res.status_code == 201
    body = res.get_json()
    assert body['already_processed'] is False
    assert body['payment']['square_ids'] == [11, 12]

    carol = User.query.filter_by(email='carol@example.com').one()
    assert carol.password_hash is None
    grid = {sq['id']: sq for sq in client.get('/api/squares').get_json()['squares']}
    assert grid[11]['owner_name'] == 'Carol'
    assert grid[12]['status'] == 'paid'

    # buyer can later claim the account by registering
    res = client.post('/register', json={'email': 'carol@example.com', 'password': 'pw'})
    assert res.status_code == 201
    assert res.get_json()['user']['id'] == carol.id


def test_payment_webhook_is_idempotent(client):
    data = {'payment_ref': 'pi_dup', 'payer': {'email': 'dan@example.com'}, 'square_ids': [20], 'amount': 50}
    assert _post_payment(client, data).status_code == 201
    res = _post_payment(client, data)
    assert res.status_code == 200
    assert res.get_json()['already_processed'] is True
    assert Payment.query.filter_by(payment_ref='pi_dup').count() == 1


def test_payment_webhook_conflict_is_kept_for_refund(client, user_client):
    user_client.post('/api/squares/purchase', json={'square_ids': [30]})
    res = _post_payment(client, {
        'payment_ref': 'pi_late', 'payer': {'email': 'erin@example.com'}, 'square_ids': [30, 31], 'amount': 100,
    })
    assert res.status_code == 409
    assert res.get_json()['payment_status'] == 'conflict'
    payment = Payment.query.filter_by(payment_ref='pi_late').one()
    assert payment.status == PaymentStatus.CONFLICT
    assert db.session.get(GridSquare, 31).status == SquareStatus.AVAILABLE


def test_payment_webhook_rejects_bad_signature(client, flask_app):
    res = _post_payment(client, {'payment_ref': 'x'}, secret='wrong')
    assert res.status_code == 401
    flask_app.config['PAYMENT_WEBHOOK_SECRET'] = ''
    assert _post_payment(client, {'payment_ref': 'x'}).status_code == 503


def test_payment_webhook_rejects_malformed_event_data(client):
    res = _post_payment(client, ['sq-1', 'sq-2'])
    assert res.status_code == 400
    res = _post_payment(client, {'payment_ref': 'pi_list', 'payer': ['bob'], 'square_ids': [1], 'amount': 50})
    assert res.status_code == 400
    assert Payment.query.filter_by(payment_ref='pi_list').count() == 0


def test_payment_webhook_ignores_other_events(client):
    res = _post_payment(client, {}, event_type='payment.refunded')
    assert res.status_code == 200
    assert res.get_json()['ignored'] == 'payment.refunded'


def test_admin_confirms_payment(client, admin_client):
    _post_payment(client, {'payment_ref': 'venmo-1', 'payer': {'email': 'fay@example.com'},
                           'square_ids': [40], 'amount': 50, 'method': 'venmo'})
    payment_id = Payment.query.filter_by(payment_ref='venmo-1').one().id
    res = admin_client.post(f'/api/admin/payments/{payment_id}/confirm')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'confirmed'
    db.session.expire_all()
    assert db.session.get(GridSquare, 40).status == SquareStatus.CONFIRMED


def test_pool_summary(client, user_client):
    user_client.post('/api/squares/purchase', json={'square_ids': [1, 2]})
    summary = client.get('/api/squares/summary').get_json()
    assert summary['sold_count'] == 2
    assert summary['available_count'] == 98
    assert summary['launched'] is False
    assert summary['payouts']['total'] == 5000.0
