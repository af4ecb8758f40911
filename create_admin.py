#!/usr/bin/env python3
"""
Script to create an admin (or order manager) account and print a bearer token
Usage: python create_admin.py
"""

import sys
import os
from datetime import timedelta

from pydantic import ValidationError

# Add the backend directory to the Python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from database.connection import SessionLocal, create_tables
from services.auth import create_access_token
from models.user import User, UserRole
from schemas.user import UserCreate, Token

TOKEN_LIFETIME = timedelta(days=30)

def create_admin_user():
    """Create an admin user interactively"""
    print("Fulfillment Admin User Creation")
    print("=" * 40)

    try:
        payload = UserCreate(
            email=input("Email: ").strip().lower(),
            name=input("Name: ").strip(),
            role=input("Role [ADMIN/ORDER_MANAGER] (default ADMIN): ").strip() or "ADMIN"
        )
    except ValidationError as e:
        print(f"Invalid input: {e}")
        return

    if payload.role not in (UserRole.ADMIN, UserRole.ORDER_MANAGER):
        print(f"Unsupported role: {payload.role.value}")
        return

    create_tables()
    db = SessionLocal()

    try:
        user = db.query(User).filter(User.email == payload.email).first()
        if user:
            print(f"User with email {payload.email} already exists with role {user.role.value}")
        else:
            user = User(email=payload.email, name=payload.name, role=payload.role)
            db.add(user)
            db.commit()
            db.refresh(user)
            print(f"Created {user.role.value} user {user.id}")

        token = Token(
            access_token=create_access_token({"sub": user.id, "role": user.role.value}, TOKEN_LIFETIME),
            expires_in=int(TOKEN_LIFETIME.total_seconds())
        )
        print("\nBearer token (valid 30 days):")
        print(token.model_dump_json(indent=2))

    except Exception as e:
        db.rollback()
        print(f"Error creating admin user: {str(e)}")
    finally:
        db.close()

if __name__ == "__main__":
    create_admin_user()
