import asyncio
import logging

from chatdesk.core.config import get_settings
from chatdesk.core.db import close_engine, get_session_factory, init_engine
from chatdesk.core.logging_config import configure_logging
from chatdesk.services.thread_service import ThreadService

logger = logging.getLogger("chatdesk.rebuild_threads")


def print_progress(processed: int, total: int) -> None:
    percent = (processed / total * 100) if total else 100.0
    print(f"Progress: {processed}/{total} ({percent:.1f}%)")


async def main() -> None:
    configure_logging(get_settings().log_level)
    engine = init_engine()
    try:
        session_factory = get_session_factory()
        async with session_factory() as session:
            service = ThreadService(session)
            print("Rebuilding conversation threads...")
            result = await service.rebuild_all_threads(progress_callback=print_progress)
            summary = await service.summary()

        print(f"Processed {result.processed_threads} of {result.total_groups} message groups")
        print(f"Threads:     {summary['threads']}")
        print(f"With orders: {summary['with_orders']}")
        print(f"Purchased:   {summary['purchased']}")
    except Exception:
        logger.exception("Thread rebuild failed")
        raise
    finally:
        await close_engine(engine)


if __name__ == "__main__":
    asyncio.run(main())
