from .models import Base
from .session import engine

from app.utils.logging import get_logger

logger = get_logger()


def create_tables():
    """Create booking and notification tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info(f"Ensured tables: {', '.join(sorted(Base.metadata.tables))}")


def reset_db():
    """Drop and recreate every table. Local development only."""
    logger.warning(f"Resetting database at {engine.url.render_as_string()}")
    Base.metadata.drop_all(engine)
    create_tables()


if __name__ == "__main__":
    reset_db()
