"""
Queue worker

    python -m orderhub.worker consume   # deliver orders.created to the CRM
"""

import logging
import signal
import sys

from orderhub import config
from orderhub.deps import build_crm_consumer

logger = logging.getLogger(__name__)


def run_consumer():
    consumer = build_crm_consumer()

    def _signal_handler(sig, frame):
        logger.info("Shutdown signal received, stopping consumer...")
        consumer.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        consumer.run()
    finally:
        metrics = consumer.get_metrics()
        logger.info(
            f"Consumer metrics - received: {metrics['received']}, "
            f"processed: {metrics['processed']}, requeued: {metrics['requeued']}, "
            f"dead-lettered: {metrics['dead_lettered']}"
        )


def main(argv=None) -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    argv = sys.argv[1:] if argv is None else argv
    mode = argv[0].strip().lower() if argv else "consume"

    if mode in ("consume", "worker"):
        run_consumer()
        return 0

    print("Usage:")
    print("  python -m orderhub.worker consume   # consume orders.created and deliver to the CRM")
    return 2


if __name__ == "__main__":
    sys.exit(main())
