"""Seed the local database with demo quizzes and a signed-in demo user.

Run once:  cd server && python scripts/seed_demo_content.py [email]
"""

import asyncio
import os
import sys
import logging

sys.path.append(os.getcwd())

from sqlalchemy import select

from studydash.models.base import async_session_factory, init_db
from studydash.models.quiz import Quiz
from studydash.services.store_client import StoreClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_QUIZZES = [
    ("Cell Biology Basics", "Organelles, membranes and cell division.", 20, 15),
    ("Linear Algebra I", "Vectors, matrices and linear maps.", 30, 12),
    ("Intro to Macroeconomics", "GDP, inflation and monetary policy.", 25, 20),
    ("Organic Chemistry: Functional Groups", "Naming and reactions of common groups.", 15, 10),
]


async def seed_quizzes() -> None:
    async with async_session_factory() as db:
        existing = set((await db.execute(select(Quiz.title))).scalars().all())
        added = 0
        for title, description, time_limit, question_count in DEMO_QUIZZES:
            if title in existing:
                logger.info(f"Already exists: {title}")
                continue
            db.add(Quiz(
                title=title,
                description=description,
                time_limit=time_limit,
                question_count=question_count,
            ))
            added += 1
        await db.commit()
    logger.info(f"Added {added} quizzes")


async def main(email: str) -> None:
    await init_db()
    await seed_quizzes()

    session = await StoreClient(async_session_factory).sign_in(email)
    logger.info(f"Signed in {session.email} until {session.expires_at:%Y-%m-%d %H:%M} UTC")
    print(f"Authorization: Bearer {session.access_token}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "demo@example.com"))
