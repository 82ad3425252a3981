# db_init.py
from pathlib import Path

from sqlalchemy import select

from config import Config
from models import Base, make_engine, make_session_factory, SystemSetting
from settings import DEFAULT_SETTINGS


def seed_default_settings(session) -> int:
    """Inserts any DEFAULT_SETTINGS key that has no row yet. Returns rows added."""
    existing = set(session.execute(select(SystemSetting.setting_key)).scalars().all())
    added = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        session.add(SystemSetting(setting_key=key, setting_value=value))
        added += 1
    session.commit()
    return added


def main():
    # Ensure instance/ exists for SQLite local dev
    if Config.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)

    # Ensure exports/ exists for PDFs
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)

    with make_session_factory(engine)() as s:
        added = seed_default_settings(s)

    print("✅ Database initialized.")
    print(f"DB: {Config.SQLALCHEMY_DATABASE_URI}")
    print(f"Exports dir: {Config.EXPORTS_DIR}")
    print(f"Default settings added: {added}")

if __name__ == "__main__":
    main()
