#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates the analytics result tables (and lineup_results, for local
development) in the database named by DATABASE_URL:
    pip install -e .
    python backend/init_db.py
"""
from lineup_analytics.database import engine, init_db


if __name__ == "__main__":
    print(f"Creating analytics tables on {engine.url.render_as_string(hide_password=True)}...")
    init_db()
    print("Tables created successfully!")
