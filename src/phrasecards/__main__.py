"""Main entry point for the flashcard backend."""
import asyncio
import logging
import signal
from typing import Optional

from phrasecards.app import PhrasecardsApp
from phrasecards.config import ensure_directories
from phrasecards.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def main(stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the application until SIGINT/SIGTERM or ``stop_event`` is set."""
    if stop_event is None:
        stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGTERM, signal.SIGINT)
    for sig in signals:
        loop.add_signal_handler(sig, stop_event.set)

    app = PhrasecardsApp()
    try:
        logger.info("Starting application...")
        await app.start()
        await stop_event.wait()
        logger.info("Received exit signal, shutting down...")
    finally:
        await app.stop()
        for sig in signals:
            loop.remove_signal_handler(sig)
        logger.info("Application stopped")


def run() -> None:
    """Prepare directories and logging, then run the event loop."""
    ensure_directories()
    setup_logging("Starting phrasecards ...")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    run()
