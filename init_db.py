"""Print the Supabase schema for the exam portal (run it in the Supabase SQL Editor)."""
import os
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")

# SQL schema
SCHEMA_SQL = """
-- User profiles (id = Supabase auth user id)
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    role VARCHAR(10) NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
    show_in_rank BOOLEAN NOT NULL DEFAULT FALSE,
    profile_image TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Test definitions; questions are stored whole (edit = full replacement)
CREATE TABLE IF NOT EXISTS tests (
    id UUID PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    time_limit VARCHAR(10) NOT NULL DEFAULT '30:00',
    passing_score INT NOT NULL DEFAULT 70 CHECK (passing_score BETWEEN 1 AND 100),
    shuffle_questions BOOLEAN NOT NULL DEFAULT FALSE,
    questions JSONB NOT NULL,
    image_url TEXT,
    created_by UUID REFERENCES users(id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Completed attempts (append-only)
CREATE TABLE IF NOT EXISTS results (
    id UUID PRIMARY KEY,
    test_id UUID NOT NULL,
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    user_email TEXT,
    user_name TEXT,
    answers JSONB NOT NULL DEFAULT '[]',
    visible_questions JSONB NOT NULL DEFAULT '[]',
    score NUMERIC(10,4) NOT NULL DEFAULT 0,
    total_points INT NOT NULL DEFAULT 0,
    percentage INT NOT NULL DEFAULT 0,
    passed BOOLEAN NOT NULL DEFAULT FALSE,
    time_spent INT NOT NULL DEFAULT 0,
    matching_results JSONB NOT NULL DEFAULT '{}',
    completed_at TIMESTAMPTZ NOT NULL
);

-- Site settings (single row, id = 1)
CREATE TABLE IF NOT EXISTS settings (
    id INT PRIMARY KEY,
    site_name TEXT,
    site_description TEXT,
    welcome_message TEXT,
    footer_text TEXT,
    contact_email TEXT,
    terms_and_conditions TEXT,
    privacy_policy TEXT
);

-- Results imported from the published Google Sheet
CREATE TABLE IF NOT EXISTS sheet_results (
    id VARCHAR(40) PRIMARY KEY,
    timestamp TEXT,
    score TEXT,
    username TEXT,
    percentage NUMERIC(6,2) DEFAULT 0,
    imported_at TIMESTAMPTZ DEFAULT NOW()
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_users_first_name ON users(first_name);
CREATE INDEX IF NOT EXISTS idx_tests_created_at ON tests(created_at);
CREATE INDEX IF NOT EXISTS idx_results_user_id ON results(user_id);
CREATE INDEX IF NOT EXISTS idx_results_test_id ON results(test_id);
CREATE INDEX IF NOT EXISTS idx_results_completed_at ON results(completed_at);
CREATE INDEX IF NOT EXISTS idx_sheet_results_username ON sheet_results(username);
"""


def schema_statements() -> list[str]:
    return [s.strip() for s in SCHEMA_SQL.split(";") if s.strip()]


if __name__ == "__main__":
    print("Exam portal schema")
    print(f"URL: {SUPABASE_URL or '(SUPABASE_URL not set)'}")
    statements = schema_statements()
    for i, stmt in enumerate(statements, 1):
        first = next(line for line in stmt.splitlines() if not line.startswith("--"))
        print(f"Statement {i}/{len(statements)}: {first[:60]}...")
    print("\nNote: Due to Supabase client limitations, run this SQL in Supabase SQL Editor:")
    print(SCHEMA_SQL)
    print("Go to: https://app.supabase.com > SQL Editor > New Query")
