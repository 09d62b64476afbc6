from .session import engine, init_db, get_session  # noqa: F401
