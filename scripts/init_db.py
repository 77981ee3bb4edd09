from propertyops.db import create_db_and_tables
from propertyops.models import *  # noqa: F401,F403 - register every table with SQLModel

if __name__ == "__main__":
    print("Creating tables...")
    create_db_and_tables()
    print("Tables created successfully!")
