"""The Alembic migrations build the same schema the models declare."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ROOT = Path(__file__).resolve().parent.parent


def _config(db_path: Path) -> Config:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "migrations"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    config.attributes["configure_logger"] = False
    return config


def _columns(inspector, table: str) -> set[str]:
    return {column["name"] for column in inspector.get_columns(table)}


def test_upgrade_creates_tables(tmp_path):
    db_path = tmp_path / "migrated.db"
    command.upgrade(_config(db_path), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        assert {"users", "chats", "messages"} <= set(inspector.get_table_names())
        assert {"id", "username", "email", "password_hash", "created_at"} <= _columns(
            inspector, "users"
        )
        assert {"id", "user_id", "title", "created_at", "updated_at"} <= _columns(
            inspector, "chats"
        )
        assert {"id", "chat_id", "position", "role", "content", "content_type"} <= _columns(
            inspector, "messages"
        )
        index_names = {index["name"] for index in inspector.get_indexes("messages")}
        assert "ix_messages_chat_position" in index_names
    finally:
        engine.dispose()


def test_downgrade_drops_tables(tmp_path):
    db_path = tmp_path / "migrated.db"
    config = _config(db_path)
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
        assert not {"users", "chats", "messages"} & tables
    finally:
        engine.dispose()
