# elections/wsgi.py

# WSGI entrypoint for production servers, e.g.
#   gunicorn 'elections.wsgi:app'
# Starts the election scheduler in the serving process so /health reflects it.

import atexit

from elections import app  # noqa: F401
from elections.operations.scheduler import election_scheduler, start_scheduler_if_enabled

if start_scheduler_if_enabled():
    atexit.register(election_scheduler.shutdown)
