"""
SlotMatch — Entry Point.

Single entry point: `python main.py` starts the recurring-booking processor
and the waitlist offer sweeper.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from slotmatch.bot.job_runner import main

if __name__ == "__main__":
    main()
