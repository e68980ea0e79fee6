"""Run the submission worker as a standalone process.

Pending submissions are picked up from the database, so the API can run
with RUN_EMBEDDED_WORKER=false.
"""

import logging
import time

from codejudge.config import settings
from codejudge.core.database import SessionLocal, init_db
from codejudge.services.submission_pipeline import create_submission_pipeline


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_db()
    pipeline = create_submission_pipeline(SessionLocal)
    pipeline.start()
    try:
        while True:
            pipeline.recover_pending()
            time.sleep(max(0.1, settings.WORKER_POLL_INTERVAL_SECONDS))
    except KeyboardInterrupt:
        pipeline.stop()


if __name__ == "__main__":
    main()
