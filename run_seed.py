import asyncio
import logging

from chatdesk.core.config import get_settings
from chatdesk.core.db import close_engine, get_session_factory, init_engine
from chatdesk.core.logging_config import configure_logging
from chatdesk.infra.db.seed import seed_default_admin, seed_default_instructions

logger = logging.getLogger("chatdesk.seed")


async def main() -> None:
    configure_logging(get_settings().log_level)
    engine = init_engine()
    try:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await seed_default_admin(session)
            await seed_default_instructions(session)
            await session.commit()
        logger.info("Seed data loaded")
    finally:
        await close_engine(engine)


if __name__ == "__main__":
    asyncio.run(main())
