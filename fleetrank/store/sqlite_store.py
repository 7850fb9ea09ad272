"""SQLite-backed data store with async writes and sync reads."""

import json
import logging
import math
import sqlite3
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from .. import analytics, tactical
from ..activity import ONLINE_TIMEOUT_MINUTES, advance_streak, pulse_score
from ..catalog import Catalog
from ..events import get_bus
from ..platform_team import RankContext, is_platform_team_email, normalize_email
from ..titles import eligible_titles, title_buffs, title_xp_buff
from ..xp import (
    AUTHORED_ACTIONS,
    FORUM_XP,
    calculate_donor_xp,
    calculate_post_xp,
    calculate_profile_completion_xp,
    calculate_streak_xp,
    calculate_unified_xp,
)
from .schema import INDEXES_SQL, LEADERBOARD_CATEGORIES, SCHEMA_SQL

logger = logging.getLogger(__name__)

PROFILE_XP_FIELDS = (
    "forum_xp",
    "profile_completion_xp",
    "achievement_xp",
    "recruitment_xp",
)

LEADERBOARD_SQL = {
    "total_donated": """
        SELECT u.id AS user_id, u.display_name, COALESCE(SUM(p.amount), 0) AS value
        FROM users u
        JOIN donors d ON d.auth_user_id = u.id
        JOIN pledges p ON p.donor_id = d.id
        GROUP BY u.id
        ORDER BY value DESC, u.id ASC
        LIMIT ?""",
    "unified_xp": """
        SELECT u.id AS user_id, u.display_name, pr.unified_xp AS value
        FROM users u
        JOIN profiles pr ON pr.user_id = u.id
        WHERE pr.unified_xp > 0
        ORDER BY value DESC, u.id ASC
        LIMIT ?""",
    "forum_activity": """
        SELECT u.id AS user_id, u.display_name, COUNT(e.id) AS value
        FROM users u
        JOIN forum_xp_events e ON e.user_id = u.id
        GROUP BY u.id
        ORDER BY value DESC, u.id ASC
        LIMIT ?""",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore:
    """SQLite-backed store with sync reads (sqlite3) and async writes (aiosqlite)."""

    def __init__(self, path: str):
        self.path = path
        self._read_conn: Optional[sqlite3.Connection] = None
        self._write_conn: Optional[aiosqlite.Connection] = None

    async def initialize(self, catalog: Optional[Catalog] = None) -> None:
        """Create tables, indexes, seed the catalog and open connections."""
        self._write_conn = await aiosqlite.connect(self.path)
        await self._write_conn.execute("PRAGMA journal_mode=WAL;")
        await self._write_conn.execute("PRAGMA foreign_keys=ON;")
        await self._write_conn.executescript(SCHEMA_SQL)
        for idx_sql in INDEXES_SQL:
            await self._write_conn.execute(idx_sql)
        await self._write_conn.commit()

        if catalog is not None:
            await self.seed_catalog(catalog)

        # Open sync connection for reads (read-only via WAL)
        self._read_conn = sqlite3.connect(self.path)
        self._read_conn.row_factory = sqlite3.Row
        self._read_conn.execute("PRAGMA journal_mode=WAL;")
        self._read_conn.execute("PRAGMA query_only=ON;")

    async def close(self) -> None:
        """Close all database connections."""
        if self._write_conn:
            await self._write_conn.close()
        if self._read_conn:
            self._read_conn.close()

    async def seed_catalog(self, catalog: Catalog) -> None:
        for member in catalog.platform_team:
            await self._write_conn.execute(
                "INSERT OR IGNORE INTO platform_team (email, name, role) VALUES (?, ?, ?)",
                (normalize_email(member.email), member.name, member.role),
            )
        for rank in catalog.forum_ranks:
            await self._write_conn.execute(
                """INSERT OR IGNORE INTO forum_ranks
                   (slug, name, min_points, sort_order, description)
                   VALUES (?, ?, ?, ?, ?)""",
                (rank.slug, rank.name, rank.min_points, rank.sort_order, rank.description),
            )
        for title in catalog.ambassadorial_titles:
            await self._write_conn.execute(
                """INSERT OR IGNORE INTO ambassadorial_titles
                   (slug, display_name, description, campaign_slug,
                    minimum_pledge_amount, xp_multiplier, forum_xp_bonus,
                    participation_xp_bonus, tier_level, color, badge_style)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (title.slug, title.display_name, title.description, title.campaign_slug,
                 title.minimum_pledge_amount, title.xp_multiplier, title.forum_xp_bonus,
                 title.participation_xp_bonus, title.tier_level, title.color,
                 title.badge_style),
            )
        await self._write_conn.commit()
        logger.info("Catalog seeded")

    # ---- helpers ----

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self._read_conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._read_conn.execute(sql, params).fetchall()]

    def _scalar(self, sql: str, params: tuple = ()) -> Any:
        return self._read_conn.execute(sql, params).fetchone()[0]

    async def _ensure_profile(self, user_id: int) -> None:
        await self._write_conn.execute(
            "INSERT OR IGNORE INTO profiles (user_id, updated_at) VALUES (?, ?)",
            (user_id, _now()),
        )

    # ---- Users & membership ----

    async def add_user(self, email: str, display_name: str) -> int:
        cur = await self._write_conn.execute(
            "INSERT INTO users (email, display_name, created_at) VALUES (?, ?, ?)",
            (normalize_email(email), display_name, _now()),
        )
        user_id = cur.lastrowid
        await self._ensure_profile(user_id)
        await self._write_conn.commit()
        return user_id

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        if not row:
            return None
        d = dict(row)
        d["is_online"] = bool(d["is_online"])
        return d

    def list_user_ids(self) -> List[int]:
        return [r["id"] for r in self._fetchall("SELECT id FROM users ORDER BY id")]

    async def touch_user(self, user_id: int, is_online: bool = True) -> None:
        await self._write_conn.execute(
            "UPDATE users SET last_seen = ?, is_online = ? WHERE id = ?",
            (_now(), int(is_online), user_id),
        )
        await self._write_conn.commit()

    async def mark_inactive_offline(
        self, timeout_minutes: int = ONLINE_TIMEOUT_MINUTES, now: Optional[datetime] = None
    ) -> int:
        """Clear the online flag for users silent past the timeout. Returns users changed."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(minutes=timeout_minutes)).isoformat()
        cur = await self._write_conn.execute(
            "UPDATE users SET is_online = 0 WHERE is_online = 1 AND (last_seen IS NULL OR last_seen < ?)",
            (cutoff,),
        )
        await self._write_conn.commit()
        return cur.rowcount

    async def set_admin(
        self, user_id: int, is_super_admin: bool = False, is_content_manager: bool = False
    ) -> None:
        await self._write_conn.execute(
            """INSERT INTO admin_users (user_id, is_super_admin, is_content_manager, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 is_super_admin = excluded.is_super_admin,
                 is_content_manager = excluded.is_content_manager""",
            (user_id, int(is_super_admin), int(is_content_manager), _now()),
        )
        await self._write_conn.commit()

    def is_admin(self, user_id: int) -> bool:
        row = self._fetchone(
            "SELECT is_super_admin, is_content_manager FROM admin_users WHERE user_id = ?",
            (user_id,),
        )
        return bool(row and (row["is_super_admin"] or row["is_content_manager"]))

    def is_platform_team(self, email: Optional[str]) -> bool:
        return is_platform_team_email(email, self.get_platform_team_emails())

    def get_platform_team_emails(self) -> List[str]:
        return [r["email"] for r in self._fetchall("SELECT email FROM platform_team")]

    def get_rank_context(self, user_id: int, email: Optional[str] = None) -> RankContext:
        """Look up override membership for one user."""
        if email is None:
            user = self.get_user(user_id)
            email = user["email"] if user else None
        return RankContext(
            user_id=user_id,
            email=email,
            is_admin=self.is_admin(user_id),
            is_platform_team=self.is_platform_team(email),
        )

    def is_rank_override(self, user_id: int) -> bool:
        return self.get_rank_context(user_id).is_overridden

    # ---- Campaigns, donors, pledges ----

    async def add_campaign(
        self, slug: str, name: str, goal_amount: float = 0,
        active: bool = True, provider: str = None,
    ) -> int:
        cur = await self._write_conn.execute(
            """INSERT INTO campaigns (slug, name, provider, goal_amount, active)
               VALUES (?, ?, ?, ?, ?)""",
            (slug, name, provider, goal_amount, int(active)),
        )
        await self._write_conn.commit()
        return cur.lastrowid

    async def add_donor(
        self, email: str, full_name: str = None, auth_user_id: int = None
    ) -> int:
        cur = await self._write_conn.execute(
            "INSERT INTO donors (email, full_name, auth_user_id, created_at) VALUES (?, ?, ?, ?)",
            (normalize_email(email), full_name, auth_user_id, _now()),
        )
        await self._write_conn.commit()
        return cur.lastrowid

    async def link_donor(self, donor_id: int, user_id: int) -> bool:
        cur = await self._write_conn.execute(
            "UPDATE donors SET auth_user_id = ? WHERE id = ?", (user_id, donor_id)
        )
        await self._write_conn.commit()
        return cur.rowcount > 0

    async def add_pledge(self, donor_id: int, campaign_id: int, amount: float) -> int:
        cur = await self._write_conn.execute(
            "INSERT INTO pledges (donor_id, campaign_id, amount, created_at) VALUES (?, ?, ?, ?)",
            (donor_id, campaign_id, amount, _now()),
        )
        await self._write_conn.commit()
        return cur.lastrowid

    def get_user_pledges(self, user_id: int) -> List[Dict[str, Any]]:
        return self._fetchall(
            """SELECT p.id, p.amount, p.created_at, c.slug AS campaign_slug,
                      c.name AS campaign_name
               FROM pledges p
               JOIN donors d ON d.id = p.donor_id
               JOIN campaigns c ON c.id = p.campaign_id
               WHERE d.auth_user_id = ?
               ORDER BY p.created_at""",
            (user_id,),
        )

    def get_total_pledged(self, user_id: int) -> float:
        return float(self._scalar(
            """SELECT COALESCE(SUM(p.amount), 0) FROM pledges p
               JOIN donors d ON d.id = p.donor_id
               WHERE d.auth_user_id = ?""",
            (user_id,),
        ))

    # ---- Profiles & XP ----

    def get_profile(self, user_id: int) -> Dict[str, Any]:
        row = self._fetchone("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        if row:
            return dict(row)
        return {
            "user_id": user_id,
            "unified_xp": 0,
            "forum_xp": 0,
            "profile_completion_xp": 0,
            "achievement_xp": 0,
            "recruitment_xp": 0,
            "donation_xp": 0,
            "participation_xp": 0,
            "total_posts": 0,
            "total_comments": 0,
            "updated_at": None,
        }

    async def add_profile_xp(self, user_id: int, field_name: str, amount: int) -> None:
        if field_name not in PROFILE_XP_FIELDS:
            raise ValueError(f"Unknown XP field: {field_name}")
        await self._ensure_profile(user_id)
        await self._write_conn.execute(
            f"UPDATE profiles SET {field_name} = {field_name} + ?, updated_at = ? WHERE user_id = ?",
            (amount, _now(), user_id),
        )
        await self._write_conn.commit()

    async def set_profile_completion(self, user_id: int, **flags: Any) -> int:
        """Recompute one-time profile completion XP from profile flags."""
        xp = calculate_profile_completion_xp(**flags)
        await self._ensure_profile(user_id)
        await self._write_conn.execute(
            "UPDATE profiles SET profile_completion_xp = ?, updated_at = ? WHERE user_id = ?",
            (xp, _now(), user_id),
        )
        await self._write_conn.commit()
        return xp

    async def recalculate_user_xp(self, user_id: int) -> Dict[str, int]:
        """Rebuild donation, participation and unified XP for one user."""
        profile = self.get_profile(user_id)
        donation_xp = int(calculate_donor_xp(self.get_total_pledged(user_id)))
        participation_xp = sum(int(profile.get(f) or 0) for f in PROFILE_XP_FIELDS)
        participation_xp += title_xp_buff(self.get_user_titles(user_id))
        unified_xp = calculate_unified_xp(donation_xp, participation_xp)

        await self._ensure_profile(user_id)
        await self._write_conn.execute(
            """UPDATE profiles SET donation_xp = ?, participation_xp = ?,
               unified_xp = ?, updated_at = ? WHERE user_id = ?""",
            (donation_xp, participation_xp, unified_xp, _now(), user_id),
        )
        await self._write_conn.commit()
        return {
            "donation_xp": donation_xp,
            "participation_xp": participation_xp,
            "unified_xp": unified_xp,
        }

    async def recalculate_all(self) -> int:
        """Award titles then rebuild XP for every user. Returns users processed."""
        user_ids = self.list_user_ids()
        awarded = 0
        for user_id in user_ids:
            awarded += await self.award_titles(user_id)
            await self.recalculate_user_xp(user_id)
        logger.info(f"Recalculated XP for {len(user_ids)} users ({awarded} new titles)")
        return len(user_ids)

    # ---- Forum ranks & XP ----

    def get_forum_ranks(self) -> List[Dict[str, Any]]:
        return self._fetchall("SELECT * FROM forum_ranks ORDER BY min_points ASC")

    async def assign_forum_rank(self, user_id: int, slug: str) -> bool:
        row = self._fetchone("SELECT id FROM forum_ranks WHERE slug = ?", (slug,))
        if not row:
            return False
        await self._write_conn.execute(
            """INSERT INTO forum_user_ranks (user_id, rank_id) VALUES (?, ?)
               ON CONFLICT(user_id) DO UPDATE SET rank_id = excluded.rank_id""",
            (user_id, row["id"]),
        )
        await self._write_conn.commit()
        return True

    def get_user_forum_rank(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone(
            """SELECT r.* FROM forum_user_ranks ur
               JOIN forum_ranks r ON r.id = ur.rank_id
               WHERE ur.user_id = ?""",
            (user_id,),
        )
        return dict(row) if row else None

    def count_forum_events_since(
        self, user_id: int, since: datetime, actions: Optional[Tuple[str, ...]] = None
    ) -> int:
        sql = "SELECT COUNT(*) FROM forum_xp_events WHERE user_id = ? AND created_at >= ?"
        params: list = [user_id, since.isoformat()]
        if actions:
            sql += f" AND action IN ({', '.join('?' for _ in actions)})"
            params.extend(actions)
        return self._scalar(sql, tuple(params))

    async def record_forum_action(
        self, user_id: int, action: str, word_count: int = 0, has_media: bool = False
    ) -> Tuple[bool, str, int]:
        """Award forum XP for one action. Returns (ok, reason, xp_awarded)."""
        base_xp = FORUM_XP.get(action)
        if base_xp is None:
            return False, "unknown_action", 0

        now = datetime.now(timezone.utc)
        midnight = datetime.combine(now.date(), time(), tzinfo=timezone.utc)
        post_number_today = self.count_forum_events_since(user_id, midnight, AUTHORED_ACTIONS) + 1
        xp = calculate_post_xp(base_xp, word_count, has_media, post_number_today)
        multiplier = self.get_title_buffs(user_id)["xp_multiplier"]
        if multiplier != 1.0:
            xp = math.floor(xp * multiplier)

        await self._ensure_profile(user_id)
        await self._write_conn.execute(
            "INSERT INTO forum_xp_events (user_id, action, xp, created_at) VALUES (?, ?, ?, ?)",
            (user_id, action, xp, now.isoformat()),
        )
        posts = 1 if action == "create_thread" else 0
        comments = 1 if action == "post_reply" else 0
        await self._write_conn.execute(
            """UPDATE profiles SET forum_xp = forum_xp + ?,
               total_posts = total_posts + ?, total_comments = total_comments + ?,
               updated_at = ? WHERE user_id = ?""",
            (xp, posts, comments, now.isoformat(), user_id),
        )
        await self._write_conn.commit()
        logger.info(f"User {user_id} earned {xp} forum XP for {action} (#{post_number_today} today)")
        return True, "", xp

    # ---- Ambassadorial titles ----

    def get_title_catalog(self) -> List[Dict[str, Any]]:
        return self._fetchall("SELECT * FROM ambassadorial_titles ORDER BY tier_level")

    def get_user_titles(self, user_id: int) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            """SELECT t.*, ut.title_id, ut.awarded_at, ut.source, ut.source_pledge_id,
                      ut.is_displayed, ut.is_primary
               FROM user_ambassadorial_titles ut
               JOIN ambassadorial_titles t ON t.id = ut.title_id
               WHERE ut.user_id = ?
               ORDER BY ut.awarded_at DESC, ut.id DESC""",
            (user_id,),
        )
        for r in rows:
            r["is_displayed"] = bool(r["is_displayed"])
            r["is_primary"] = bool(r["is_primary"])
        return rows

    def get_title_buffs(self, user_id: int) -> Dict[str, Any]:
        return title_buffs(self.get_user_titles(user_id))

    async def award_titles(self, user_id: int) -> int:
        """Grant any titles the user's pledges qualify for. Returns new awards."""
        held = {t["title_id"] for t in self.get_user_titles(user_id)}
        earned = eligible_titles(self.get_user_pledges(user_id), self.get_title_catalog())
        new = 0
        for title in earned:
            if title["id"] in held:
                continue
            cur = await self._write_conn.execute(
                """INSERT OR IGNORE INTO user_ambassadorial_titles
                   (user_id, title_id, source, source_pledge_id, awarded_at)
                   VALUES (?, ?, 'pledge', ?, ?)""",
                (user_id, title["id"], title["source_pledge_id"], _now()),
            )
            new += cur.rowcount
        if new:
            await self._write_conn.commit()
            logger.info(f"Awarded {new} ambassadorial titles to user {user_id}")
        return new

    def _holds_title(self, user_id: int, title_id: int) -> bool:
        return self._fetchone(
            "SELECT 1 FROM user_ambassadorial_titles WHERE user_id = ? AND title_id = ?",
            (user_id, title_id),
        ) is not None

    async def set_primary_title(self, user_id: int, title_id: int) -> Tuple[bool, str]:
        if not self._holds_title(user_id, title_id):
            return False, "not_found"
        await self._write_conn.execute(
            "UPDATE user_ambassadorial_titles SET is_primary = 0 WHERE user_id = ?",
            (user_id,),
        )
        await self._write_conn.execute(
            "UPDATE user_ambassadorial_titles SET is_primary = 1 WHERE user_id = ? AND title_id = ?",
            (user_id, title_id),
        )
        await self._write_conn.commit()
        return True, ""

    async def set_title_display(
        self, user_id: int, title_id: int, is_displayed: bool
    ) -> Tuple[bool, str]:
        if not self._holds_title(user_id, title_id):
            return False, "not_found"
        await self._write_conn.execute(
            "UPDATE user_ambassadorial_titles SET is_displayed = ? WHERE user_id = ? AND title_id = ?",
            (int(is_displayed), user_id, title_id),
        )
        await self._write_conn.commit()
        return True, ""

    # ---- Activity metrics ----

    def get_activity(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM activity_metrics WHERE user_id = ?", (user_id,))
        return dict(row) if row else None

    async def update_activity(
        self, user_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Advance the login streak and recompute the pulse score."""
        now = now or datetime.now(timezone.utc)
        today = now.date()
        current = self.get_activity(user_id) or {}

        last_login = current.get("last_login_date")
        streak, longest = advance_streak(
            date.fromisoformat(last_login) if last_login else None,
            today,
            current.get("current_streak_days") or 0,
            current.get("longest_streak_days") or 0,
        )

        activity_7d = self.count_forum_events_since(
            user_id, now - timedelta(days=7), AUTHORED_ACTIONS
        )
        user = self.get_user(user_id) or {}
        last_seen = user.get("last_seen")
        hours_since_seen = 0.0
        if last_seen:
            try:
                hours_since_seen = (now - datetime.fromisoformat(last_seen)).total_seconds() / 3600
            except ValueError:
                logger.error(f"Invalid last_seen for user {user_id}: {last_seen}")
        # A stale online flag counts as offline even before the sweep clears it
        is_online = bool(user.get("is_online")) and hours_since_seen * 60 < ONLINE_TIMEOUT_MINUTES
        score = pulse_score(
            self.get_profile(user_id).get("unified_xp") or 0,
            activity_7d,
            hours_since_seen,
            is_online,
        )

        await self._write_conn.execute(
            """INSERT INTO activity_metrics
               (user_id, current_streak_days, longest_streak_days, last_login_date,
                recent_activity_7d, pulse_score, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 current_streak_days = excluded.current_streak_days,
                 longest_streak_days = excluded.longest_streak_days,
                 last_login_date = excluded.last_login_date,
                 recent_activity_7d = excluded.recent_activity_7d,
                 pulse_score = excluded.pulse_score,
                 updated_at = excluded.updated_at""",
            (user_id, streak, longest, today.isoformat(), activity_7d, score, now.isoformat()),
        )
        await self._write_conn.commit()
        return {
            "current_streak_days": streak,
            "longest_streak_days": longest,
            "streak_xp": calculate_streak_xp(streak),
            "recent_activity_7d": activity_7d,
            "pulse_score": score,
        }

    # ---- Leaderboard ----

    def _leaderboard_rows(self, category: str, limit: int) -> List[Dict[str, Any]]:
        rows = self._fetchall(LEADERBOARD_SQL[category], (limit,))
        for position, row in enumerate(rows, start=1):
            row["position"] = position
        return rows

    def get_leaderboard(self, category: str, limit: int = 10) -> List[Dict[str, Any]]:
        if category not in LEADERBOARD_CATEGORIES:
            raise ValueError(f"Unknown leaderboard category: {category}")
        limit = min(max(int(limit), 1), 100)
        return self._leaderboard_rows(category, limit)

    def get_leaderboard_position(self, user_id: int, category: str) -> Optional[Dict[str, Any]]:
        if category not in LEADERBOARD_CATEGORIES:
            raise ValueError(f"Unknown leaderboard category: {category}")
        # LIMIT -1 is unbounded in SQLite
        for row in self._leaderboard_rows(category, -1):
            if row["user_id"] == user_id:
                return row
        return None

    # ---- Admin analytics ----

    def _aggregate_analytics(self) -> Dict[str, Any]:
        counts = {
            "total_donors": self._scalar("SELECT COUNT(*) FROM donors"),
            "active_donors": self._scalar("SELECT COUNT(DISTINCT donor_id) FROM pledges"),
            "total_raised": self._scalar("SELECT COALESCE(SUM(amount), 0) FROM pledges"),
            "total_campaigns": self._scalar("SELECT COUNT(*) FROM campaigns"),
            "active_campaigns": self._scalar("SELECT COUNT(*) FROM campaigns WHERE active = 1"),
            "total_pledges": self._scalar("SELECT COUNT(*) FROM pledges"),
        }
        top_donors = self._fetchall(
            """SELECT d.id, COALESCE(d.full_name, 'Unknown') AS name, d.email,
                      SUM(p.amount) AS total_donated, COUNT(p.id) AS pledge_count
               FROM donors d JOIN pledges p ON p.donor_id = d.id
               GROUP BY d.id ORDER BY total_donated DESC, d.id ASC LIMIT ?""",
            (analytics.TOP_N,),
        )
        top_campaigns = self._fetchall(
            """SELECT c.id, c.name, SUM(p.amount) AS total_raised,
                      COUNT(DISTINCT p.donor_id) AS donor_count,
                      COALESCE(c.goal_amount, 0) AS goal_amount
               FROM campaigns c JOIN pledges p ON p.campaign_id = c.id
               GROUP BY c.id ORDER BY total_raised DESC, c.id ASC LIMIT ?""",
            (analytics.TOP_N,),
        )
        return analytics.assemble(counts, top_donors, top_campaigns)

    def get_analytics(self) -> Dict[str, Any]:
        """Dashboard analytics; falls back to raw rows if aggregation fails."""
        try:
            return self._aggregate_analytics()
        except sqlite3.Error as e:
            logger.warning(f"Analytics aggregation failed, using fallback: {type(e).__name__}: {e}")
            return analytics.fallback_analytics(
                self._fetchall("SELECT * FROM donors"),
                self._fetchall("SELECT * FROM campaigns"),
                self._fetchall("SELECT * FROM pledges"),
            )

    # ---- Tactical game ----

    def _row_to_game(self, row: sqlite3.Row) -> Dict[str, Any]:
        d = dict(row)
        d["is_locked"] = bool(d["is_locked"])
        return d

    def _row_to_ship(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row["destroyed"] = bool(row["destroyed"])
        return row

    async def _notify(self, game_id: int, event_type: str, turn: int) -> None:
        await get_bus().publish(
            tactical.channel_for(game_id),
            {"type": event_type, "game_id": game_id, "turn": turn},
        )

    def can_direct(self, game: Dict[str, Any], user_id: int) -> bool:
        return game["gm_user_id"] == user_id or self.is_admin(user_id)

    async def create_game(self, name: str, gm_user_id: int) -> int:
        cur = await self._write_conn.execute(
            "INSERT INTO tactical_games (name, gm_user_id, created_at) VALUES (?, ?, ?)",
            (name, gm_user_id, _now()),
        )
        await self._write_conn.commit()
        logger.info(f"Tactical game {cur.lastrowid} created by GM {gm_user_id}")
        return cur.lastrowid

    def get_game(self, game_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM tactical_games WHERE id = ?", (game_id,))
        return self._row_to_game(row) if row else None

    def get_ships(self, game_id: int) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM tactical_ships WHERE game_id = ? ORDER BY created_at, id", (game_id,)
        )
        return [self._row_to_ship(r) for r in rows]

    def get_ship(self, ship_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM tactical_ships WHERE id = ?", (ship_id,))
        return self._row_to_ship(dict(row)) if row else None

    def get_moves(
        self, game_id: int, turn: Optional[int] = None, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM tactical_moves WHERE game_id = ?"
        params: list = [game_id]
        if turn is not None:
            sql += " AND turn = ?"
            params.append(turn)
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        rows = self._fetchall(sql + " ORDER BY id", tuple(params))
        for r in rows:
            r["actions"] = json.loads(r["actions"])
        return rows

    def get_move(self, move_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM tactical_moves WHERE id = ?", (move_id,))
        if not row:
            return None
        d = dict(row)
        d["actions"] = json.loads(d["actions"])
        return d

    def get_events(self, game_id: int) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM tactical_events WHERE game_id = ? ORDER BY id", (game_id,)
        )
        for r in rows:
            r["payload"] = json.loads(r["payload"]) if r["payload"] else None
        return rows

    async def add_ship(
        self, game_id: int, owner_user_id: int, name: str,
        max_hull: int = 100, shields: int = 0,
    ) -> Tuple[Optional[int], str]:
        game = self.get_game(game_id)
        if not game:
            return None, "not_found"
        if game["status"] == tactical.GAME_FINISHED:
            return None, "game_finished"
        cur = await self._write_conn.execute(
            """INSERT INTO tactical_ships
               (game_id, owner_user_id, name, hull, max_hull, shields, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (game_id, owner_user_id, name, max_hull, max_hull, shields, _now()),
        )
        await self._write_conn.commit()
        await self._notify(game_id, "ship_added", game["current_turn"])
        return cur.lastrowid, ""

    async def submit_move(
        self, game_id: int, ship_id: int, user_id: int, actions: List[Dict[str, Any]]
    ) -> Tuple[Optional[int], str]:
        game = self.get_game(game_id)
        if not game:
            return None, "not_found"
        if game["status"] == tactical.GAME_FINISHED:
            return None, "game_finished"
        if game["is_locked"]:
            return None, "game_locked"

        ship = self.get_ship(ship_id)
        if not ship or ship["game_id"] != game_id or ship["owner_user_id"] != user_id:
            return None, "not_your_ship"
        if ship["destroyed"]:
            return None, "ship_destroyed"

        turn = game["current_turn"]
        existing = self._fetchone(
            """SELECT 1 FROM tactical_moves
               WHERE game_id = ? AND ship_id = ? AND turn = ? AND status = ?""",
            (game_id, ship_id, turn, tactical.MOVE_PENDING),
        )
        if existing:
            return None, "already_submitted"

        cur = await self._write_conn.execute(
            """INSERT INTO tactical_moves
               (game_id, ship_id, user_id, turn, actions, status, submitted_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (game_id, ship_id, user_id, turn, json.dumps(actions),
             tactical.MOVE_PENDING, _now()),
        )
        await self._write_conn.commit()
        await self._notify(game_id, "move_submitted", turn)
        return cur.lastrowid, ""

    async def lock_turn(self, game_id: int, user_id: int) -> Tuple[bool, str]:
        game = self.get_game(game_id)
        if not game:
            return False, "not_found"
        if not self.can_direct(game, user_id):
            return False, "not_gm"
        if game["status"] == tactical.GAME_FINISHED:
            return False, "game_finished"
        await self._write_conn.execute(
            "UPDATE tactical_games SET is_locked = 1 WHERE id = ?", (game_id,)
        )
        await self._write_conn.commit()
        await self._notify(game_id, "turn_locked", game["current_turn"])
        return True, ""

    async def resolve_move(
        self, move_id: int, user_id: int, outcome: tactical.Outcome
    ) -> Tuple[bool, str]:
        """Apply the GM's ruling to the move's ship and mark the move resolved."""
        move = self.get_move(move_id)
        if not move:
            return False, "not_found"
        game = self.get_game(move["game_id"])
        if not self.can_direct(game, user_id):
            return False, "not_gm"
        if move["status"] != tactical.MOVE_PENDING:
            return False, "not_pending"

        ship = self.get_ship(move["ship_id"])
        update = tactical.apply_outcome(ship, outcome)
        now = _now()
        await self._write_conn.execute(
            "UPDATE tactical_ships SET hull = ?, shields = ?, destroyed = ? WHERE id = ?",
            (update["hull"], update["shields"], int(update["destroyed"]), ship["id"]),
        )
        payload = {
            "move_id": move_id,
            "ship_id": ship["id"],
            "damage": outcome.damage,
            "shield_delta": outcome.shield_delta,
            "note": outcome.note,
            **update,
        }
        await self._write_conn.execute(
            """INSERT INTO tactical_events (game_id, turn, kind, payload, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (game["id"], move["turn"], outcome.event_kind, json.dumps(payload), now),
        )
        await self._write_conn.execute(
            "UPDATE tactical_moves SET status = ?, resolved_at = ? WHERE id = ?",
            (tactical.MOVE_RESOLVED, now, move_id),
        )
        await self._write_conn.commit()
        await self._notify(game["id"], "move_resolved", move["turn"])
        return True, ""

    async def end_turn(self, game_id: int, user_id: int) -> Tuple[bool, str]:
        """Expire leftover moves, advance the turn and unlock the game."""
        game = self.get_game(game_id)
        if not game:
            return False, "not_found"
        if not self.can_direct(game, user_id):
            return False, "not_gm"
        if game["status"] == tactical.GAME_FINISHED:
            return False, "game_finished"

        turn = game["current_turn"]
        await self._write_conn.execute(
            "UPDATE tactical_moves SET status = ? WHERE game_id = ? AND turn = ? AND status = ?",
            (tactical.MOVE_EXPIRED, game_id, turn, tactical.MOVE_PENDING),
        )
        status = tactical.GAME_FINISHED if tactical.is_game_over(self.get_ships(game_id)) else tactical.GAME_ACTIVE
        await self._write_conn.execute(
            """UPDATE tactical_games SET current_turn = ?, is_locked = 0, status = ?
               WHERE id = ?""",
            (turn + 1, status, game_id),
        )
        await self._write_conn.commit()
        logger.info(f"Game {game_id} advanced to turn {turn + 1} ({status})")
        await self._notify(game_id, "turn_ended", turn + 1)
        return True, ""
