#!/usr/bin/env python3
"""
PIMS Meet Bot - Entry Point

Запуск:
    python -m pims_bot
    # или
    pims-bot
"""

import asyncio
import logging

from .bot import PimsBotController
from .core import get_settings, setup_logging

logger = logging.getLogger(__name__)


async def main():
    """Main entry point"""
    settings = get_settings()
    setup_logging(settings)

    logger.info("=" * 50)
    logger.info(f"🚀 {settings.app_name}")
    logger.info("=" * 50)

    controller = PimsBotController(settings)
    await controller.start()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 Bot stopped by user")
    except Exception as e:
        logger.error(f"❌ Fatal error: {e}", exc_info=True)
        raise SystemExit(1)


if __name__ == "__main__":
    run()
