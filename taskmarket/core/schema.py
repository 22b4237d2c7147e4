"""SQLite schema management (code-first approach)."""

import logging

from taskmarket.core.config import settings


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in dependency order
COLLECTIONS = [
    "profiles",
    "tasks",
    "task_applications",
    "chats",
    "messages",
]


_TABLES: dict[str, str] = {
    "profiles": """
        CREATE TABLE IF NOT EXISTS profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL,
            requestor_rating INTEGER NOT NULL DEFAULT 0 CHECK (requestor_rating BETWEEN 0 AND 5),
            doer_rating INTEGER NOT NULL DEFAULT 0 CHECK (doer_rating BETWEEN 0 AND 5),
            created_at TEXT NOT NULL
        )
    """,
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            location TEXT NOT NULL DEFAULT '',
            reward REAL NOT NULL DEFAULT 0,
            deadline TEXT NOT NULL,
            task_type TEXT NOT NULL DEFAULT 'normal' CHECK (task_type IN ('normal', 'joint')),
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'completed')),
            creator_id INTEGER NOT NULL REFERENCES profiles (id),
            doer_id INTEGER REFERENCES profiles (id),
            requestor_verification_code TEXT,
            doer_verification_code TEXT,
            is_requestor_verified INTEGER NOT NULL DEFAULT 0,
            is_doer_verified INTEGER NOT NULL DEFAULT 0,
            requestor_rated INTEGER NOT NULL DEFAULT 0,
            doer_rated INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )
    """,
    "task_applications": """
        CREATE TABLE IF NOT EXISTS task_applications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL REFERENCES tasks (id),
            applicant_id INTEGER NOT NULL REFERENCES profiles (id),
            message TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
            created_at TEXT NOT NULL
        )
    """,
    "chats": """
        CREATE TABLE IF NOT EXISTS chats (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user1_id INTEGER NOT NULL REFERENCES profiles (id),
            user2_id INTEGER NOT NULL REFERENCES profiles (id),
            created_at TEXT NOT NULL
        )
    """,
    "messages": """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            chat_id INTEGER NOT NULL REFERENCES chats (id),
            sender_id INTEGER NOT NULL REFERENCES profiles (id),
            receiver_id INTEGER NOT NULL REFERENCES profiles (id),
            content TEXT NOT NULL,
            read INTEGER NOT NULL DEFAULT 0,
            timestamp TEXT NOT NULL
        )
    """,
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_creator_status ON tasks (creator_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_doer ON tasks (doer_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_applications_task_applicant ON task_applications (task_id, applicant_id)",
    "CREATE INDEX IF NOT EXISTS idx_applications_applicant ON task_applications (applicant_id)",
    "CREATE INDEX IF NOT EXISTS idx_chats_users ON chats (user1_id, user2_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages (chat_id, timestamp)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist."""
    # Imported lazily: db_client delegates init_db() to this module
    from taskmarket.core.db_client import get_connection  # noqa: PLC0415

    conn = await get_connection(db_path=db_path)
    for collection in COLLECTIONS:
        await conn.execute(_TABLES[collection])
    for index in _INDEXES:
        await conn.execute(index)
    await conn.commit()

    logger.info(
        "Database schema initialized",
        extra={"db_path": db_path or settings.sqlite_db_path, "collections": COLLECTIONS},
    )
