# create_tables.py
from db import engine
from logger import error_logging_context, logger
from models import Base


def main():
    with error_logging_context("create_tables"):
        Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
