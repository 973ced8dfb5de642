# elections/__main__.py

# Development entrypoint: serves the API and runs the election scheduler
#   python -m elections

import logging
import os

from elections import app, db
from elections.operations.scheduler import election_scheduler, start_scheduler_if_enabled


def main():
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    with app.app_context():
        db.create_all()
    start_scheduler_if_enabled()
    try:
        app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8080")), threaded=True)
    finally:
        election_scheduler.shutdown()


if __name__ == "__main__":
    main()
