#!/usr/bin/env python3
"""
Operator Seed Script
Creates an operator account able to issue share links.

Usage:
    python -m scripts.seed_operator <email> <username> <password> [role]

Example:
    python -m scripts.seed_operator organiser@example.org organiser securepassword123 admin
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import OperatorDB
from app.auth import hash_password

VALID_ROLES = ("organiser", "admin")


def create_operator(email: str, username: str, password: str, role: str = "organiser") -> bool:
    """Create an operator, or upgrade an existing one to the requested role."""
    init_db()

    db: Session = SessionLocal()
    try:
        existing = db.query(OperatorDB).filter(
            (OperatorDB.email == email) | (OperatorDB.username == username)
        ).first()

        if existing:
            if existing.email != email:
                print(f"Error: Username '{username}' already exists.")
                return False
            if existing.role == role:
                print(f"Operator '{email}' already has role {role}.")
                return False
            existing.role = role
            db.commit()
            print(f"Updated operator '{email}' to {role} role.")
            return True

        operator = OperatorDB(
            id=str(uuid4()),
            email=email,
            username=username,
            password_hash=hash_password(password),
            role=role,
        )
        db.add(operator)
        db.commit()

        print("Operator created successfully!")
        print(f"  Email: {email}")
        print(f"  Username: {username}")
        print(f"  Role: {role}")
        return True

    except SQLAlchemyError as e:
        print(f"Error creating operator: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (4, 5):
        print(__doc__)
        sys.exit(1)

    email, username, password = sys.argv[1:4]
    role = sys.argv[4] if len(sys.argv) == 5 else "organiser"

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    if role not in VALID_ROLES:
        print(f"Error: Role must be one of {', '.join(VALID_ROLES)}.")
        sys.exit(1)

    success = create_operator(email, username, password, role)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
