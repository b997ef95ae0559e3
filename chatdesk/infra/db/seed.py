import logging
import os

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.security import hash_password
from chatdesk.domain.enums import InstructionCategory, Platform, UserRole
from chatdesk.infra.db.models import Instruction, User

logger = logging.getLogger(__name__)

DEFAULT_ADMIN: dict[str, str] = {
    "name": "Administrator",
    "email": "admin@chatdesk.local",
    "password": "Admin@12345",
}

DEFAULT_INSTRUCTIONS: list[dict] = [
    {
        "name": "Friendly greeting",
        "description": "Greets new customers and asks how the team can help.",
        "content": (
            "Greet the customer warmly by name when it is known and ask how "
            "you can help today."
        ),
        "category": InstructionCategory.GREETING,
        "platforms": [platform.value for platform in Platform],
        "priority": 5,
    },
    {
        "name": "Escalate when unsure",
        "description": "Hands uncertain answers over to a human agent.",
        "content": (
            "If you are not sure about an answer, say that a support agent "
            "will follow up shortly instead of guessing."
        ),
        "category": InstructionCategory.SUPPORT,
        "platforms": [platform.value for platform in Platform],
        "priority": 3,
    },
]


async def seed_default_admin(session: AsyncSession) -> None:
    existing = await session.execute(select(func.count(User.id)))
    if int(existing.scalar_one() or 0) > 0:
        return

    email = os.getenv("SEED_ADMIN_EMAIL", DEFAULT_ADMIN["email"]).strip().lower()
    password = os.getenv("SEED_ADMIN_PASSWORD", DEFAULT_ADMIN["password"])
    session.add(
        User(
            name=DEFAULT_ADMIN["name"],
            email=email,
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            is_active=True,
        )
    )
    await session.flush()
    logger.info("Seeded default admin account %s", email)


async def seed_default_instructions(session: AsyncSession) -> None:
    existing_rows = await session.execute(select(Instruction.name))
    existing_names = set(existing_rows.scalars().all())

    inserts = [
        Instruction(tags=[], is_active=True, **item)
        for item in DEFAULT_INSTRUCTIONS
        if item["name"] not in existing_names
    ]
    if inserts:
        session.add_all(inserts)
        await session.flush()
        logger.info("Seeded %d default instructions", len(inserts))
