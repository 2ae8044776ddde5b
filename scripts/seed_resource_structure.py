"""
Seed the resource structure: system properties, resource types and categories.
Safe to run repeatedly; existing rows are refreshed, not duplicated.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from resource_hub.config import settings
from resource_hub.db import Base, engine
from resource_hub.logging import setup_logging
from resource_hub.main import seed_resource_structure


def main():
    setup_logging()
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)
    counts = seed_resource_structure()
    print(f"Created {counts['properties']} properties, {counts['types']} types, {counts['categories']} categories")


if __name__ == "__main__":
    main()
