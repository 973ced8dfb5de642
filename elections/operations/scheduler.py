# elections/operations/scheduler.py

# Background daemon that drives time-based election transitions

import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from elections import app, db
from elections.database.models import utc_now
from elections.voting.lifecycle import apply_time_transitions

logger = logging.getLogger(__name__)


class ElectionScheduler:
    def __init__(self, app, interval: float = 10.0):
        """
        Args:
            app: Flask application whose database the ticks run against
            interval: seconds between ticks
        """
        self.app = app
        self.interval = interval
        self.worker: Optional[threading.Thread] = None
        self._stop = threading.Event()

        self.metrics = {
            "ticks": 0,
            "failed_ticks": 0,
            "last_tick_time": None,
            "last_error": None,
        }

    def tick(self, now: Optional[datetime] = None) -> Optional[Dict]:
        """Run one pass. Errors are logged and swallowed; the next tick retries."""
        with self.app.app_context():
            try:
                changes = apply_time_transitions(now)
                self.metrics["ticks"] += 1
                self.metrics["last_tick_time"] = utc_now().isoformat()
                if any(changes.values()):
                    logger.info("Election scheduler tick: %s", changes)
                return changes
            except Exception as e:
                self.metrics["failed_ticks"] += 1
                self.metrics["last_error"] = str(e)
                logger.exception("Election scheduler tick failed")
                return None
            finally:
                db.session.remove()

    def _run(self):
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval)

    def start(self):
        if self.is_running():
            return
        self._stop.clear()
        self.worker = threading.Thread(target=self._run, name="election-scheduler")
        self.worker.daemon = True
        self.worker.start()
        logger.info("Election scheduler started (every %ss)", self.interval)

    def is_running(self) -> bool:
        return self.worker is not None and self.worker.is_alive()

    def shutdown(self, timeout: float = 5.0):
        self._stop.set()
        if self.worker is not None:
            self.worker.join(timeout=timeout)
        logger.info("Election scheduler stopped")

    def get_metrics(self) -> Dict:
        metrics = dict(self.metrics)
        metrics["running"] = self.is_running()
        return metrics


election_scheduler = ElectionScheduler(app, interval=app.config['ELECTION_SCHEDULER_INTERVAL'])


def start_scheduler_if_enabled(config=None):
    """Start the shared scheduler when ELECTION_SCHEDULER_ENABLED is set.

    Called by every serving entrypoint. Several worker processes may each
    run one; the transitions are conditional bulk updates, so overlapping
    ticks are harmless.
    """
    config = config if config is not None else app.config
    if not config['ELECTION_SCHEDULER_ENABLED']:
        return False
    election_scheduler.start()
    return True
