"""
Sample data for development databases.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from .database import utcnow
from .repositories import Repositories

logger = logging.getLogger(__name__)


async def seed_sample_data(repositories: Repositories, now: Optional[datetime] = None) -> Dict[str, str]:
    """
    Create two users, one soundtrack project with a member, tasks, expenses
    and notes.

    Args:
        repositories: Repositories to write through
        now: Reference time for dates (current UTC time when None)

    Returns:
        Ids of the created admin user, regular user and project
    """
    now = now or utcnow()

    admin = await repositories.users.create({
        "name": "Admin User",
        "email": "admin@visualharmonics.com",
        "role": "admin",
    })
    member = await repositories.users.create({
        "name": "John Doe",
        "email": "john@visualharmonics.com",
        "role": "user",
    })

    project = await repositories.projects.create({
        "name": "Fantasy RPG Soundtrack",
        "description": "Original soundtrack for upcoming RPG game with 10 tracks",
        "type": "soundtrack",
        "status": "active",
        "start_date": now,
        "end_date": now + timedelta(days=90),
        "owner_id": admin["id"],
    })
    await repositories.projects.add_member(project["id"], member["id"], "member")

    task_specs = [
        ("Create main theme", "Compose the main theme for the game", "in_progress", "high", 14, admin["id"]),
        ("Battle music", "Create dynamic battle music", "todo", "medium", 30, member["id"]),
        ("Ambient town music", "Peaceful music for town environments", "todo", "medium", 45, member["id"]),
    ]
    for title, description, status, priority, due_in_days, assignee_id in task_specs:
        await repositories.tasks.create({
            "title": title,
            "description": description,
            "status": status,
            "priority": priority,
            "due_date": now + timedelta(days=due_in_days),
            "project_id": project["id"],
            "assignee_id": assignee_id,
        })

    await repositories.expenses.create({
        "title": "Software license",
        "description": "Annual subscription for audio software",
        "amount": 299.99,
        "date": now,
        "category": "software",
        "paid": True,
        "user_id": admin["id"],
        "project_id": project["id"],
    })
    await repositories.expenses.create({
        "title": "Studio time",
        "description": "Recording session for live instruments",
        "amount": 450.00,
        "date": now + timedelta(days=5),
        "category": "studio",
        "paid": False,
        "user_id": admin["id"],
        "project_id": project["id"],
    })

    await repositories.notes.create({
        "title": "Character themes",
        "content": "Ideas for character-specific leitmotifs:\n- Hero: Heroic, brass-heavy\n"
                   "- Villain: Dark, dissonant strings\n- Companion: Light woodwinds",
        "is_public": True,
        "author_id": admin["id"],
        "project_id": project["id"],
    })
    await repositories.notes.create({
        "title": "Production timeline",
        "content": "Week 1-2: Main theme\nWeek 3-4: Character themes\nWeek 5-6: Environmental music\n"
                   "Week 7-8: Battle music\nWeek 9-10: Final mixing and mastering",
        "is_public": True,
        "author_id": admin["id"],
        "project_id": project["id"],
    })

    await repositories.files.create({
        "name": "main-theme-demo.wav",
        "type": "audio/wav",
        "size": 5_242_880,
        "url": "/uploads/main-theme-demo.wav",
        "uploader_id": admin["id"],
        "project_id": project["id"],
    })

    logger.info("Database seeded successfully")
    return {"admin_id": admin["id"], "member_id": member["id"], "project_id": project["id"]}
