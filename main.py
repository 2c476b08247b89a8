"""
House Bot Launcher
==================
Starts the payout engine and the fee-claim / buyback bot:
- Load .env and build BotConfig
- Run the startup checks (wallet, balance, token mint); abort on failure
- Start the notifier and the treasury scheduler
- Print final stats on SIGINT / SIGTERM

Usage:
    python main.py
"""

import os
import sys
import time
import signal
import logging
from dotenv import load_dotenv

load_dotenv()

from house_bot import BotConfig, ConfigError, HouseBot, setup_logging
from notifier import Notifier


def main():
    config = BotConfig()
    logger = setup_logging(config.log_level, config.log_dir,
                           config.game_log_file, config.treasury_log_file)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error("  CONFIG ERROR: {}".format(err))
        sys.exit(1)

    try:
        bot = HouseBot(config, notifier=Notifier(config), logger=logger)
        bot.startup()
    except ConfigError as e:
        logger.error("❌ Startup failed: {}".format(e))
        sys.exit(1)

    def _shutdown(signum, frame):
        logger.info("\nShutdown signal received. Stopping treasury cycle...")
        try:
            bot.stop()
        except Exception as e:
            logger.error("  Shutdown error: {}".format(e))
        logging.shutdown()
        os._exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    bot.start()
    logger.info("✅ House bot running. Press Ctrl+C to stop.")
    while True:
        time.sleep(60)


if __name__ == "__main__":
    main()
