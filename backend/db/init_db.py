# backend/db/init_db.py
import logging

from core.logging import configure_logging
from db.session import engine
from db.models import Base

logger = logging.getLogger(__name__)


def main():
    configure_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Draft room tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()
