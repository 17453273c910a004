from typing import Dict, Set

from goldrush import socketio


# sabotage id -> start time of the sabotage the pending timer belongs to
_scheduled_sabotages: Dict[int, object] = {}


def schedule_sabotage_expiry(app, sabotage_id: int, started_at, delay: int) -> None:
    """Schedule the deferred deactivation of a sabotage.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per sabotage
    - A cancelled or replaced entry turns the pending task into a no-op;
      ids reused after a reset carry a different start time
    - The expiry itself re-checks the row, so an overrule in the meantime wins
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    if _scheduled_sabotages.get(sabotage_id) == started_at:
        app.logger.info(f"[timer-skip] sabotage={sabotage_id} already scheduled")
        return
    _scheduled_sabotages[sabotage_id] = started_at
    app.logger.info(f"[timer-set] sabotage={sabotage_id} delay={delay}s")

    def _worker(sid: int, started, wait: int):
        socketio.sleep(wait)
        if _scheduled_sabotages.get(sid) != started:
            app.logger.info(f"[timer-abort] sabotage={sid} cancelled")
            return
        del _scheduled_sabotages[sid]
        from .sabotage import expire_sabotage
        with app.app_context():
            try:
                ended = expire_sabotage(sid)
            except Exception as exc:
                app.logger.error(f"[timer-error] sabotage={sid} error={exc!r}")
                return
            app.logger.info(f"[timer-fire] sabotage={sid} ended={ended}")

    socketio.start_background_task(_worker, sabotage_id, started_at, delay)


def cancel_sabotage_expiry(sabotage_id: int) -> None:
    _scheduled_sabotages.pop(sabotage_id, None)


def cancel_all_sabotage_expiries() -> None:
    _scheduled_sabotages.clear()


def pending_sabotage_expiries() -> Set[int]:
    return set(_scheduled_sabotages)
