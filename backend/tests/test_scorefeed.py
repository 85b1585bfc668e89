import httpx
import pytest

from squarespool import db
from squarespool.errors import ScoreFeedError
from squarespool.models import GamePhase, QuarterWinner, ScoreHistory
from squarespool.services.pool import scorefeed
from squarespool.services.pool.game_state import get_game_state
from squarespool.services.pool.scorefeed import fetch_scoreboard, parse_scoreboard, sync_scores


def _event(event_id, name, away, home, period=1, clock='12:00', state='in', completed=False, status_name=None):
    return {
        'id': event_id,
        'name': name,
        'competitions': [{
            'id': event_id,
            'status': {
                'period': period,
                'displayClock': clock,
                'type': {'state': state, 'completed': completed, 'name': status_name},
            },
            'competitors': [
                {'homeAway': 'home', 'score': str(home[1]),
                 'team': {'displayName': home[0], 'abbreviation': home[0][:3].upper()}},
                {'homeAway': 'away', 'score': str(away[1]),
                 'team': {'displayName': away[0], 'abbreviation': away[0][:3].upper()}},
            ],
            'situation': {'possession': '12', 'lastPlay': {'text': 'Field goal is GOOD'}},
        }],
    }


def _scoreboard(**kwargs):
    return {'events': [
        _event('100', 'Lions at Bears', ('Lions', 3), ('Bears', 0)),
        _event('401', 'Super Bowl LX', ('Chiefs', 17), ('Eagles', 14), **kwargs),
    ]}


def test_parse_prefers_the_super_bowl():
    snap = parse_scoreboard(_scoreboard(period=3, clock='4:11'))
    assert snap.event_id == '401'
    assert (snap.afc_team, snap.afc_score) == ('Chiefs', 17)
    assert (snap.nfc_team, snap.nfc_score) == ('Eagles', 14)
    assert (snap.quarter, snap.clock, snap.phase) == (3, '4:11', GamePhase.LIVE)
    assert snap.last_play == 'Field goal is GOOD'


def test_parse_by_game_id_and_team_names():
    snap = parse_scoreboard(_scoreboard(), game_id='100', afc_team='bears', nfc_team='Lions')
    assert snap.event_id == '100'
    assert (snap.afc_team, snap.afc_score, snap.nfc_score) == ('Bears', 0, 3)


@pytest.mark.parametrize('kwargs,phase,quarter', [
    ({'period': 2, 'clock': '0:00'}, GamePhase.HALFTIME, 2),
    ({'period': 2, 'clock': '0:00', 'status_name': 'STATUS_HALFTIME'}, GamePhase.HALFTIME, 2),
    ({'period': 5, 'clock': '8:30'}, GamePhase.OVERTIME, 5),
    ({'period': 4, 'clock': '0:00', 'state': 'post', 'completed': True}, GamePhase.FINAL, 4),
    ({'period': 0, 'clock': '15:00', 'state': 'pre'}, GamePhase.PRE_GAME, 0),
])
def test_parse_phase(kwargs, phase, quarter):
    snap = parse_scoreboard(_scoreboard(**kwargs))
    assert (snap.phase, snap.quarter) == (phase, quarter)


def test_parse_rejects_unusable_payloads():
    with pytest.raises(ScoreFeedError):
        parse_scoreboard({'events': []})
    with pytest.raises(ScoreFeedError):
        parse_scoreboard([])
    board = _scoreboard()
    board['events'][1]['competitions'][0]['competitors'][0]['score'] = 'n/a'
    with pytest.raises(ScoreFeedError):
        parse_scoreboard(board)


def test_fetch_retries_with_backoff(flask_app):
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request.url)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=_scoreboard())

    payload = fetch_scoreboard('https://scores.test/scoreboard', retries=2, backoff=0.5,
                               transport=httpx.MockTransport(handler), sleep=sleeps.append)
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]
    assert payload['events'][1]['id'] == '401'


def test_fetch_gives_up_after_retries(flask_app):
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    with pytest.raises(ScoreFeedError):
        fetch_scoreboard('https://scores.test/scoreboard', retries=1, backoff=0,
                         transport=httpx.MockTransport(handler), sleep=lambda _: None)


def test_sync_applies_feed_to_game_state(flask_app):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_scoreboard(period=2, clock='3:00')))
    state = sync_scores(transport=transport)
    assert state is not None
    assert (state.afc_team, state.nfc_team) == ('Chiefs', 'Eagles')
    assert (state.afc_score, state.nfc_score) == (17, 14)
    assert state.source == 'feed'
    # quarter and phase only move through the admin game controls
    assert (state.quarter, state.phase) == (0, GamePhase.PRE_GAME)
    assert state.clock == '15:00'
    assert ScoreHistory.query.filter_by(scoring_type='feed').count() == 1


def _sync(**kwargs):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_scoreboard(**kwargs)))
    return sync_scores(transport=transport)


def _end_quarter(admin_client):
    res = admin_client.post('/api/admin/game/end-quarter', json={})
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def test_final_feed_still_lets_admin_settle_fourth_quarter(admin_client, launched_grid):
    admin_client.post('/api/admin/game/start')
    _end_quarter(admin_client)
    _end_quarter(admin_client)
    admin_client.post('/api/admin/game/resume')
    _end_quarter(admin_client)

    state = _sync(period=4, clock='0:00', state='post', completed=True)
    assert (state.phase, state.quarter) == (GamePhase.LIVE, 4)

    body = _end_quarter(admin_client)
    assert body['transition'] == 'final'
    assert body['winner']['quarter'] == 4
    assert (body['winner']['afc_score'], body['winner']['nfc_score']) == (17, 14)
    assert body['winner']['prize_amount'] == 2000.0
    assert [w.quarter for w in QuarterWinner.query.order_by(QuarterWinner.quarter)] == [1, 2, 3, 4]


def test_halftime_feed_still_lets_admin_settle_second_quarter(admin_client, launched_grid):
    admin_client.post('/api/admin/game/start')
    _end_quarter(admin_client)

    state = _sync(period=2, clock='0:00', status_name='STATUS_HALFTIME')
    assert (state.phase, state.quarter) == (GamePhase.LIVE, 2)

    body = _end_quarter(admin_client)
    assert body['transition'] == 'halftime'
    assert body['winner']['quarter'] == 2


def test_feed_ahead_of_the_pool_does_not_skip_a_quarter(admin_client, launched_grid):
    admin_client.post('/api/admin/game/start')

    state = _sync(period=2, clock='3:00')
    assert (state.quarter, state.clock) == (1, '15:00')
    assert (state.afc_score, state.nfc_score) == (17, 14)

    body = _end_quarter(admin_client)
    assert body['winner']['quarter'] == 1
    assert (body['winner']['afc_score'], body['winner']['nfc_score']) == (17, 14)
    assert QuarterWinner.query.filter_by(quarter=2).count() == 0


def test_feed_clock_follows_the_running_quarter(admin_client):
    admin_client.post('/api/admin/game/start')
    state = _sync(period=1, clock='4:12')
    assert (state.quarter, state.clock, state.phase) == (1, '4:12', GamePhase.LIVE)


def test_sync_failure_keeps_last_known_state(flask_app):
    state = get_game_state()
    state.afc_score = 10
    db.session.commit()

    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    assert sync_scores(transport=transport) is None
    state = get_game_state()
    assert state.afc_score == 10
    assert state.source == 'manual'


def test_admin_sync_reports_unavailable_feed(admin_client, monkeypatch):
    def unavailable(*args, **kwargs):
        raise ScoreFeedError('Score feed unavailable: boom')

    monkeypatch.setattr(scorefeed, 'fetch_scoreboard', unavailable)
    res = admin_client.post('/api/admin/game/sync')
    assert res.status_code == 502
    assert res.get_json()['game_state']['phase'] == 'pre_game'
