#!/usr/bin/env python3
"""
Project Seed Script
Creates a project and its employers so share links can be issued against them.

Usage:
    python -m scripts.seed_project <project_name> <employer_name> [<employer_name> ...]

Example:
    python -m scripts.seed_project "Metro Tunnel Stage 2" "Acme Formwork" "Delta Steel"
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import EmployerDB, ProjectDB


def create_project(name: str, employer_names: list) -> bool:
    init_db()

    db: Session = SessionLocal()
    try:
        project = ProjectDB(id=str(uuid4()), name=name)
        db.add(project)

        employers = [EmployerDB(id=str(uuid4()), name=n) for n in employer_names]
        db.add_all(employers)
        db.commit()

        print(f"Project created: {project.id}  {name}")
        for employer in employers:
            print(f"  Employer: {employer.id}  {employer.name}")
        return True

    except SQLAlchemyError as e:
        print(f"Error creating project: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    success = create_project(sys.argv[1], sys.argv[2:])
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
