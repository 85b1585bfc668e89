from squarespool import db, socketio
from squarespool.models import GamePhase
from .game_state import get_game_state
from .scorefeed import sync_scores

_poller_started = False


def start_score_polling(app) -> bool:
    """Poll the scoreboard feed in a Socket.IO background task.

    - No-ops in TESTING mode (unless ENABLE_SCHEDULER_IN_TESTS)
    - No-ops when SCORE_POLL_INTERVAL_SEC is 0
    - Starts at most one poller per process
    - Stops once the game is final
    """
    global _poller_started
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False
    interval = int(app.config.get('SCORE_POLL_INTERVAL_SEC', 0) or 0)
    if interval <= 0 or _poller_started:
        return False
    _poller_started = True

    def _worker():
        app.logger.info(f"[score-feed] poller started interval={interval}s")
        while True:
            socketio.sleep(interval)
            with app.app_context():
                try:
                    if get_game_state().phase == GamePhase.FINAL:
                        app.logger.info("[score-feed] game is final, poller stopping")
                        return
                    sync_scores()
                except Exception:
                    db.session.rollback()
                    app.logger.exception("[score-feed] poll failed")
                finally:
                    db.session.remove()

    socketio.start_background_task(_worker)
    return True
