"""Database schema definitions and constants."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    last_seen TEXT,
    is_online INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS admin_users (
    user_id INTEGER PRIMARY KEY,
    is_super_admin INTEGER DEFAULT 0,
    is_content_manager INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS platform_team (
    email TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT
);

CREATE TABLE IF NOT EXISTS campaigns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    provider TEXT,
    goal_amount REAL DEFAULT 0,
    active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS donors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT,
    full_name TEXT,
    auth_user_id INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pledges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    donor_id INTEGER NOT NULL REFERENCES donors(id),
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
    amount REAL NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS profiles (
    user_id INTEGER PRIMARY KEY,
    unified_xp INTEGER DEFAULT 0,
    forum_xp INTEGER DEFAULT 0,
    profile_completion_xp INTEGER DEFAULT 0,
    achievement_xp INTEGER DEFAULT 0,
    recruitment_xp INTEGER DEFAULT 0,
    donation_xp INTEGER DEFAULT 0,
    participation_xp INTEGER DEFAULT 0,
    total_posts INTEGER DEFAULT 0,
    total_comments INTEGER DEFAULT 0,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS forum_ranks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    min_points INTEGER NOT NULL,
    sort_order INTEGER DEFAULT 0,
    description TEXT
);

CREATE TABLE IF NOT EXISTS forum_user_ranks (
    user_id INTEGER PRIMARY KEY,
    rank_id INTEGER NOT NULL REFERENCES forum_ranks(id)
);

CREATE TABLE IF NOT EXISTS forum_xp_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    action TEXT NOT NULL,
    xp INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ambassadorial_titles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    description TEXT,
    campaign_slug TEXT,
    minimum_pledge_amount REAL NOT NULL,
    xp_multiplier REAL DEFAULT 1.0,
    forum_xp_bonus INTEGER DEFAULT 0,
    participation_xp_bonus INTEGER DEFAULT 0,
    tier_level INTEGER DEFAULT 0,
    color TEXT,
    badge_style TEXT
);

CREATE TABLE IF NOT EXISTS user_ambassadorial_titles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    title_id INTEGER NOT NULL REFERENCES ambassadorial_titles(id),
    source TEXT NOT NULL,
    source_pledge_id INTEGER,
    awarded_at TEXT NOT NULL,
    is_displayed INTEGER DEFAULT 1,
    is_primary INTEGER DEFAULT 0,
    UNIQUE(user_id, title_id)
);

CREATE TABLE IF NOT EXISTS activity_metrics (
    user_id INTEGER PRIMARY KEY,
    current_streak_days INTEGER DEFAULT 0,
    longest_streak_days INTEGER DEFAULT 0,
    last_login_date TEXT,
    recent_activity_7d INTEGER DEFAULT 0,
    pulse_score REAL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tactical_games (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    gm_user_id INTEGER NOT NULL,
    current_turn INTEGER DEFAULT 1,
    is_locked INTEGER DEFAULT 0,
    status TEXT DEFAULT 'active',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tactical_ships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id INTEGER NOT NULL REFERENCES tactical_games(id),
    owner_user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    hull INTEGER NOT NULL,
    max_hull INTEGER NOT NULL,
    shields INTEGER DEFAULT 0,
    destroyed INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tactical_moves (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id INTEGER NOT NULL REFERENCES tactical_games(id),
    ship_id INTEGER NOT NULL REFERENCES tactical_ships(id),
    user_id INTEGER NOT NULL,
    turn INTEGER NOT NULL,
    actions TEXT NOT NULL,
    status TEXT DEFAULT 'pending',
    submitted_at TEXT NOT NULL,
    resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS tactical_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id INTEGER NOT NULL REFERENCES tactical_games(id),
    turn INTEGER NOT NULL,
    kind TEXT NOT NULL,
    payload TEXT,
    created_at TEXT NOT NULL
);
"""

INDEXES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_donors_auth_user ON donors(auth_user_id);",
    "CREATE INDEX IF NOT EXISTS idx_pledges_donor ON pledges(donor_id);",
    "CREATE INDEX IF NOT EXISTS idx_pledges_campaign ON pledges(campaign_id);",
    "CREATE INDEX IF NOT EXISTS idx_forum_xp_events_user ON forum_xp_events(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_user_titles_user ON user_ambassadorial_titles(user_id, awarded_at);",
    "CREATE INDEX IF NOT EXISTS idx_tactical_ships_game ON tactical_ships(game_id);",
    "CREATE INDEX IF NOT EXISTS idx_tactical_moves_game_turn ON tactical_moves(game_id, turn, status);",
    "CREATE INDEX IF NOT EXISTS idx_tactical_events_game ON tactical_events(game_id);",
]

LEADERBOARD_CATEGORIES = ("total_donated", "unified_xp", "forum_activity")
