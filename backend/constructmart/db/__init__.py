import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from constructmart.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    All model modules are imported first so that ``Base.metadata`` knows every
    table. With ``reset`` (or the RESET_DB setting) the tables are dropped and
    recreated, which gives tests and demo environments a clean database.
    """
    # registers the mappers on Base.metadata
    from constructmart.models import (  # noqa: F401
        address,
        cart,
        cart_item,
        category,
        company,
        notification,
        order,
        payment_method,
        product,
        promotion,
        review,
        user,
        wishlist,
    )

    if reset or settings.RESET_DB:
        logger.info("Resetting database tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized (%s)", engine.url.render_as_string(hide_password=True))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
