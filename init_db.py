"""Print the Supabase schema for SKD Tryout (run it in the Supabase SQL Editor)."""
from tryout.config import SUPABASE_URL

SCHEMA_SQL = """
-- Profiles (id = auth.users.id)
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    full_name TEXT,
    phone TEXT,
    is_admin BOOLEAN DEFAULT FALSE,
    subscription_status VARCHAR(20) DEFAULT 'inactive',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Question packages
CREATE TABLE IF NOT EXISTS question_packages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    description TEXT,
    duration_minutes INT NOT NULL DEFAULT 110 CHECK (duration_minutes > 0),
    total_questions INT DEFAULT 0,
    price DECIMAL(12,2) DEFAULT 0,
    requires_payment BOOLEAN DEFAULT TRUE,
    is_active BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Questions (five options A-E)
CREATE TABLE IF NOT EXISTS questions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    package_id UUID NOT NULL REFERENCES question_packages(id) ON DELETE CASCADE,
    question_number INT NOT NULL CHECK (question_number > 0),
    question_text TEXT NOT NULL,
    option_a TEXT NOT NULL,
    option_b TEXT NOT NULL,
    option_c TEXT NOT NULL,
    option_d TEXT NOT NULL,
    option_e TEXT NOT NULL,
    correct_answer CHAR(1) NOT NULL CHECK (correct_answer IN ('A', 'B', 'C', 'D', 'E')),
    explanation TEXT,
    main_category VARCHAR(20),
    sub_category VARCHAR(100),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Tryout sessions
CREATE TABLE IF NOT EXISTS tryout_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    package_id UUID NOT NULL REFERENCES question_packages(id) ON DELETE CASCADE,
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ,
    status VARCHAR(20) DEFAULT 'in_progress',
    total_score INT,
    correct_answers INT,
    wrong_answers INT,
    unanswered INT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Answers: at most one row per (session, question)
CREATE TABLE IF NOT EXISTS user_answers (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES tryout_sessions(id) ON DELETE CASCADE,
    question_id UUID NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
    user_answer CHAR(1) CHECK (user_answer IS NULL OR user_answer IN ('A', 'B', 'C', 'D', 'E')),
    is_correct BOOLEAN DEFAULT FALSE,
    time_spent_seconds INT DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(session_id, question_id)
);

-- Per-category stats, written once when a session completes
CREATE TABLE IF NOT EXISTS question_tag_stats (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES tryout_sessions(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    package_id UUID NOT NULL,
    main_category VARCHAR(20) NOT NULL,
    sub_category VARCHAR(100) NOT NULL,
    total_questions INT NOT NULL,
    correct_answers INT NOT NULL,
    wrong_answers INT NOT NULL,
    unanswered INT NOT NULL,
    total_time_seconds INT NOT NULL,
    average_time_seconds INT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- QRIS payments
CREATE TABLE IF NOT EXISTS payments (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    package_id UUID NOT NULL REFERENCES question_packages(id) ON DELETE CASCADE,
    amount DECIMAL(12,2) NOT NULL,
    payment_method VARCHAR(20) DEFAULT 'QRIS',
    status VARCHAR(20) DEFAULT 'pending',
    qris_code TEXT,
    expires_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS payment_settings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    qris_merchant_id TEXT,
    qris_merchant_name TEXT,
    payment_timeout_minutes INT DEFAULT 30 CHECK (payment_timeout_minutes BETWEEN 5 AND 60),
    is_active BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_questions_package_id ON questions(package_id, question_number);
CREATE INDEX IF NOT EXISTS idx_tryout_sessions_user_id ON tryout_sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_tryout_sessions_package_score ON tryout_sessions(package_id, total_score DESC);
CREATE INDEX IF NOT EXISTS idx_user_answers_session_id ON user_answers(session_id);
CREATE INDEX IF NOT EXISTS idx_question_tag_stats_session_id ON question_tag_stats(session_id);
CREATE INDEX IF NOT EXISTS idx_payments_user_package ON payments(user_id, package_id, status);
"""


def statements(sql: str = SCHEMA_SQL) -> list[str]:
    return [s.strip() for s in sql.split(";") if s.strip()]


if __name__ == "__main__":
    print("SKD Tryout schema")
    print(f"URL: {SUPABASE_URL}")
    for i, stmt in enumerate(statements(), 1):
        first = next(line for line in stmt.splitlines() if not line.startswith("--"))
        print(f"Statement {i}: {first[:60]}...")
    print("\nNote: Due to Supabase client limitations, run this SQL in Supabase SQL Editor:")
    print(SCHEMA_SQL)
