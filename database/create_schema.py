import psycopg2
import os
import sys
from urllib.parse import urlparse


# Database connection details
DATABASE_URL = os.getenv("DATABASE_URL")
DB_NAME_FALLBACK = os.getenv("POSTGRES_DB", "adaptive_volume")
DB_USER_FALLBACK = os.getenv("POSTGRES_USER", "user")
DB_PASSWORD_FALLBACK = os.getenv("POSTGRES_PASSWORD", "password")
DB_HOST_FALLBACK = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT_FALLBACK = os.getenv("POSTGRES_PORT", "5432")

conn_params = {}
if DATABASE_URL:
    try:
        url = urlparse(DATABASE_URL)
        conn_params = {
            'dbname': url.path[1:],
            'user': url.username,
            'password': url.password,
            'host': url.hostname,
            'port': url.port
        }
        _db_connection_method = f"DATABASE_URL to host '{url.hostname}'"
    except Exception as e:
        print(f"Warning: Could not parse DATABASE_URL ('{DATABASE_URL}'): {e}. Falling back to POSTGRES_* variables.")
        conn_params = { # Fallback to individual variables if DATABASE_URL parsing fails
            'dbname': DB_NAME_FALLBACK,
            'user': DB_USER_FALLBACK,
            'password': DB_PASSWORD_FALLBACK,
            'host': DB_HOST_FALLBACK,
            'port': DB_PORT_FALLBACK
        }
        _db_connection_method = f"POSTGRES_* variables to host '{DB_HOST_FALLBACK}'"
else:
    conn_params = {
        'dbname': DB_NAME_FALLBACK,
        'user': DB_USER_FALLBACK,
        'password': DB_PASSWORD_FALLBACK,
        'host': DB_HOST_FALLBACK,
        'port': DB_PORT_FALLBACK
    }
    _db_connection_method = f"POSTGRES_* variables to host '{DB_HOST_FALLBACK}'"


# SQL commands to create tables and indexes
SQL_COMMANDS = """
CREATE EXTENSION IF NOT EXISTS "pgcrypto";

-- Users Table (experience_level seeds the baseline volume profile)
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email VARCHAR(255) UNIQUE NOT NULL,
    name VARCHAR(255),
    experience_level VARCHAR(20) DEFAULT 'intermediate'
        CHECK (experience_level IN ('novice', 'intermediate', 'advanced')),
    is_enhanced BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

-- Revoked access tokens
CREATE TABLE IF NOT EXISTS jwt_blocklist (
    jti UUID PRIMARY KEY,
    revoked_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Exercises Table; sets are credited to main_target_muscle_group only
CREATE TABLE IF NOT EXISTS exercises (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) UNIQUE NOT NULL,
    main_target_muscle_group VARCHAR(20),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

-- Mesocycles Table
CREATE TABLE IF NOT EXISTS mesocycles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    phase TEXT NOT NULL, -- e.g., 'accumulation', 'intensification', 'deload'
    start_date DATE NOT NULL DEFAULT CURRENT_DATE,
    end_date DATE,
    week_number INTEGER NOT NULL DEFAULT 1
);

-- Workouts Table (scheduled and completed sessions)
CREATE TABLE IF NOT EXISTS workouts (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID REFERENCES users(id) ON DELETE CASCADE,
    mesocycle_id UUID REFERENCES mesocycles(id) ON DELETE SET NULL,
    planned_date DATE NOT NULL DEFAULT CURRENT_DATE,
    started_at TIMESTAMP WITH TIME ZONE,
    completed_at TIMESTAMP WITH TIME ZONE,
    completion_percent DECIMAL(5,2) NOT NULL DEFAULT 0 CHECK (completion_percent BETWEEN 0 AND 100),
    session_rpe DECIMAL(3,1) CHECK (session_rpe BETWEEN 1 AND 10),
    notes TEXT
);

-- Workout Sets Table (Log of actual sets performed)
CREATE TABLE IF NOT EXISTS workout_sets (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    workout_id UUID REFERENCES workouts(id) ON DELETE CASCADE,
    exercise_id UUID REFERENCES exercises(id) ON DELETE RESTRICT,
    set_number INTEGER NOT NULL,
    actual_weight DECIMAL(7,2) NOT NULL CHECK (actual_weight >= 0),
    actual_reps INTEGER NOT NULL CHECK (actual_reps >= 0),
    actual_rir INTEGER CHECK (actual_rir >= 0),
    actual_rpe DECIMAL(3,1) CHECK (actual_rpe BETWEEN 0 AND 10),
    form_rating VARCHAR(20) CHECK (form_rating IN ('clean', 'some_breakdown', 'ugly')),
    is_warmup BOOLEAN NOT NULL DEFAULT false,
    completed_at TIMESTAMP WITH TIME ZONE,
    UNIQUE(workout_id, exercise_id, set_number)
);

-- Daily readiness check-ins, all ratings on a 1-5 scale
CREATE TABLE IF NOT EXISTS daily_check_ins (
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    date DATE NOT NULL,
    sleep_quality INTEGER NOT NULL CHECK (sleep_quality BETWEEN 1 AND 5),
    energy_level INTEGER NOT NULL CHECK (energy_level BETWEEN 1 AND 5),
    soreness_level INTEGER NOT NULL CHECK (soreness_level BETWEEN 1 AND 5),
    mood_rating INTEGER NOT NULL CHECK (mood_rating BETWEEN 1 AND 5),
    stress_level INTEGER NOT NULL CHECK (stress_level BETWEEN 1 AND 5),
    PRIMARY KEY (user_id, date)
);

-- Learned per-muscle volume tolerances, one row per user
CREATE TABLE IF NOT EXISTS user_volume_profiles (
    user_id UUID PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    muscle_tolerance JSONB NOT NULL DEFAULT '{}',
    global_recovery_multiplier DECIMAL(4,2) NOT NULL DEFAULT 1.0,
    is_enhanced BOOLEAN NOT NULL DEFAULT false,
    training_age VARCHAR(20) NOT NULL DEFAULT 'intermediate'
        CHECK (training_age IN ('novice', 'intermediate', 'advanced')),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

-- Weekly per-muscle volume aggregates
CREATE TABLE IF NOT EXISTS weekly_muscle_volume (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    mesocycle_id UUID REFERENCES mesocycles(id) ON DELETE SET NULL,
    week_number INTEGER NOT NULL CHECK (week_number >= 1),
    week_start DATE NOT NULL,
    muscle_group VARCHAR(20) NOT NULL CHECK (muscle_group IN (
        'chest', 'back', 'shoulders', 'biceps', 'triceps', 'quads', 'hamstrings',
        'glutes', 'calves', 'abs', 'traps', 'forearms', 'adductors'
    )),
    total_sets INTEGER NOT NULL DEFAULT 0 CHECK (total_sets >= 0),
    working_sets INTEGER NOT NULL DEFAULT 0 CHECK (working_sets >= 0),
    effective_sets INTEGER NOT NULL DEFAULT 0 CHECK (effective_sets >= 0),
    total_volume DECIMAL(12,2) NOT NULL DEFAULT 0,
    average_rir DECIMAL(4,2),
    average_form_score DECIMAL(4,3),
    exercise_performance JSONB NOT NULL DEFAULT '[]',
    CHECK (effective_sets <= working_sets AND working_sets <= total_sets),
    UNIQUE(user_id, week_start, muscle_group)
);

-- Completed mesocycle analyses
CREATE TABLE IF NOT EXISTS mesocycle_analyses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    mesocycle_id UUID NOT NULL REFERENCES mesocycles(id) ON DELETE CASCADE,
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    weeks INTEGER NOT NULL,
    muscle_volumes JSONB NOT NULL DEFAULT '{}',
    muscle_outcomes JSONB NOT NULL DEFAULT '{}',
    overall_recovery VARCHAR(20) NOT NULL CHECK (overall_recovery IN ('under_recovered', 'well_recovered', 'under_stimulated')),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, mesocycle_id)
);

CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);
CREATE INDEX IF NOT EXISTS idx_exercises_main_target_muscle_group ON exercises(main_target_muscle_group);
CREATE INDEX IF NOT EXISTS idx_mesocycles_user_id_start_date ON mesocycles(user_id, start_date DESC);
CREATE INDEX IF NOT EXISTS idx_workouts_user_id_planned_date ON workouts(user_id, planned_date DESC);
CREATE INDEX IF NOT EXISTS idx_workout_sets_workout_id ON workout_sets(workout_id);
CREATE INDEX IF NOT EXISTS idx_weekly_muscle_volume_user_week ON weekly_muscle_volume(user_id, week_start DESC);
CREATE INDEX IF NOT EXISTS idx_weekly_muscle_volume_mesocycle ON weekly_muscle_volume(user_id, mesocycle_id, week_number);
CREATE INDEX IF NOT EXISTS idx_mesocycle_analyses_user_created ON mesocycle_analyses(user_id, created_at DESC);

-- Trigger function to update 'updated_at' columns
CREATE OR REPLACE FUNCTION trigger_set_timestamp()
RETURNS TRIGGER AS $$
BEGIN
  NEW.updated_at = CURRENT_TIMESTAMP;
  RETURN NEW;
END;
$$ LANGUAGE plpgsql;

-- Apply trigger to tables with 'updated_at'
DROP TRIGGER IF EXISTS set_timestamp_users ON users;
CREATE TRIGGER set_timestamp_users
BEFORE UPDATE ON users
FOR EACH ROW
EXECUTE FUNCTION trigger_set_timestamp();
"""

def create_schema():
    conn = None
    try:
        # Use the globally defined conn_params
        print(f"Attempting to connect using {_db_connection_method}.")
        conn = psycopg2.connect(**conn_params)
        # Use conn_params to report which database and host we connected to
        print(f"Successfully connected to database '{conn_params.get('dbname')}' on host '{conn_params.get('host')}'.")
        with conn.cursor() as cur:
            cur.execute(SQL_COMMANDS)
            print("Schema creation commands executed.")
        conn.commit()
        print("Schema created successfully (or already existed).")
    except psycopg2.OperationalError as e:
        print(f"Error connecting to the database using method '{_db_connection_method}': {e}")
        # Generic advice part
        print(f"Please ensure PostgreSQL is running and accessible, "
              f"and that the target database exists with appropriate permissions.")
        sys.exit(1)
    except psycopg2.Error as e:
        print(f"Error during database operation (using '{_db_connection_method}'): {e}")
        if conn:
            conn.rollback()
        sys.exit(1)
    finally:
        if conn:
            conn.close()
            print("Database connection closed.")

if __name__ == "__main__":
    print("Attempting to create/update adaptive volume schema...")
    create_schema()
    print("Script finished.")
