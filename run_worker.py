"""
Payment Reconciliation Worker Runner
Run this as a separate process: python run_worker.py
(equivalent to: arq carwash.worker.WorkerSettings)
"""

import logging
import sys

from arq import run_worker

from carwash.worker import WorkerSettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting payment reconciliation worker...")
    try:
        run_worker(WorkerSettings)
    except KeyboardInterrupt:
        logger.info("👋 Worker stopped by user")
