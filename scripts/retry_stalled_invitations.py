#!/usr/bin/env python3
"""
Cron script that re-sends background check invitations lost after identity approval
Run this via cron every 15 minutes: */15 * * * * /path/to/venv/bin/python /path/to/retry_stalled_invitations.py
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.services.screening_service import ScreeningOrchestrator
from app.utils.logger import get_logger
from app.database import init_db
from datetime import datetime

logger = get_logger('invitation_cron')


def main():
    """Main cron job function"""
    logger.info(f"Starting stalled invitation retry at {datetime.utcnow()}")

    try:
        init_db()

        results = ScreeningOrchestrator().retry_stalled_invitations()

        logger.info(
            f"Stalled invitation retry completed: {len(results['invited'])} invited, "
            f"{len(results['failed'])} failed"
        )

    except Exception as e:
        logger.error(f"Error in stalled invitation retry: {str(e)}")
        raise


if __name__ == "__main__":
    main()
