"""FastAPI server for rank, XP, titles, analytics and the tactical game."""

import asyncio
import hashlib
import hmac
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlencode

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import config
from .events import get_bus
from .ranks import resolve_forum_rank, resolve_rank
from .scheduler import start_scheduler, stop_scheduler
from .store import close_store, get_store, init_store
from .store.schema import LEADERBOARD_CATEGORIES
from .tactical import Outcome, channel_for
from .titles import pick_primary_title, title_buffs
from .xp import effective_rank_xp

logger = logging.getLogger(__name__)

AUTH_KEY_SALT = b"FleetRankAuth"

# Pending notices per realtime subscriber
FEED_QUEUE_SIZE = 100

# Store refusal reasons -> HTTP status
REASON_STATUS = {
    "not_found": 404,
    "not_gm": 403,
    "not_your_ship": 403,
    "unknown_action": 400,
    "game_locked": 409,
    "game_finished": 409,
    "ship_destroyed": 409,
    "already_submitted": 409,
    "not_pending": 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = await init_store(config.data_file, config.catalog_file)
    logger.info(f"Store opened at {config.data_file}")
    if config.xp_recalc_minutes > 0:
        start_scheduler(store, config.xp_recalc_minutes)
    try:
        yield
    finally:
        if config.xp_recalc_minutes > 0:
            stop_scheduler()
        await close_store()
        logger.info("Store closed")


app = FastAPI(title="FleetRank API", docs_url=None, redoc_url=None, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# ---- Auth ----

def _secret_key() -> bytes:
    return hmac.new(AUTH_KEY_SALT, config.auth_secret.encode(), hashlib.sha256).digest()


def _data_check_string(fields: Dict[str, str]) -> str:
    return "\n".join(sorted(f"{k}={v}" for k, v in fields.items() if k != "hash"))


def sign_auth_data(user_id: int, email: str, auth_date: Optional[int] = None) -> str:
    """Build a signed X-Auth-Data payload for a user."""
    fields = {
        "user_id": str(user_id),
        "email": email,
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
    }
    fields["hash"] = hmac.new(
        _secret_key(), _data_check_string(fields).encode(), hashlib.sha256
    ).hexdigest()
    return urlencode(fields)


def validate_auth_data(auth_data: str) -> Optional[dict]:
    """Validate a signed auth payload using HMAC-SHA256.

    Returns ``{"user_id": int, "email": str}`` on success, None on failure.
    """
    try:
        parsed = parse_qs(auth_data, keep_blank_values=True)
        received_hash = parsed.get("hash", [None])[0]
        if not received_hash:
            logger.warning("Auth data missing hash param")
            return None

        fields = {key: values[0] for key, values in parsed.items()}
        computed_hash = hmac.new(
            _secret_key(), _data_check_string(fields).encode(), hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(computed_hash, received_hash):
            logger.warning(f"Auth HMAC mismatch: received={received_hash[:16]}...")
            return None

        auth_date = int(fields.get("auth_date", "0"))
        if time.time() - auth_date > config.auth_max_age_seconds:
            logger.warning(f"Auth data expired for user {fields.get('user_id')}")
            return None

        return {"user_id": int(fields["user_id"]), "email": fields.get("email", "")}
    except (KeyError, ValueError):
        logger.exception("Auth data validation failed")
        return None


def get_user_from_auth_data(request: Request) -> dict:
    """Extract and validate the caller from the X-Auth-Data header."""
    auth_data = request.headers.get("X-Auth-Data", "")
    if not auth_data:
        raise HTTPException(status_code=401, detail="Missing auth data")
    user = validate_auth_data(auth_data)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid auth data")
    if not get_store().get_user(user["user_id"]):
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_admin(request: Request) -> dict:
    user = get_user_from_auth_data(request)
    if not get_store().is_admin(user["user_id"]):
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return user


def raise_for_reason(reason: str) -> None:
    raise HTTPException(status_code=REASON_STATUS.get(reason, 400), detail=reason)


def build_rank_payload(user_id: int, email: Optional[str] = None) -> Dict[str, Any]:
    """Combine stored XP, membership and forum data into a rank view."""
    store = get_store()
    if not store.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    context = store.get_rank_context(user_id, email)
    profile = store.get_profile(user_id)
    total_pledged = store.get_total_pledged(user_id)
    forum_rank = store.get_user_forum_rank(user_id)

    xp = effective_rank_xp(
        total_pledged,
        forum_rank["min_points"] if forum_rank else 0,
        profile.get("unified_xp"),
    )
    rank = resolve_rank(xp, context.is_overridden)
    current, nxt, progress = resolve_forum_rank(profile.get("unified_xp"), store.get_forum_ranks())
    titles = store.get_user_titles(user_id)

    return {
        "user_id": user_id,
        "rank": rank.to_dict(),
        "is_admin": context.is_admin,
        "is_platform_team": context.is_platform_team,
        "total_pledged": total_pledged,
        "xp": {k: v for k, v in profile.items() if k not in ("user_id", "updated_at")},
        "forum_rank": forum_rank,
        "community_rank": {"current": current, "next": nxt, "progress_to_next": progress},
        "primary_title": pick_primary_title(titles),
        "title_buffs": title_buffs(titles),
    }


# ---- Models ----

class ForumActionRequest(BaseModel):
    action: str
    word_count: int = Field(0, ge=0)
    has_media: bool = False


class PrimaryTitleRequest(BaseModel):
    title_id: int


class TitleDisplayRequest(BaseModel):
    title_id: int
    is_displayed: bool


class CreateGameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class AddShipRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    owner_user_id: Optional[int] = None
    max_hull: int = Field(100, gt=0)
    shields: int = Field(0, ge=0)


class SubmitMoveRequest(BaseModel):
    ship_id: int
    actions: List[Dict[str, Any]] = Field(default_factory=list)


class ResolveMoveRequest(BaseModel):
    damage: int = Field(0, ge=0)
    shield_delta: int = 0
    event_kind: str = "resolution"
    note: Optional[str] = None


# ---- Endpoints ----

@app.get("/api/health")
async def health():
    """Health check."""
    return {"status": "ok", "port": config.webapp_port}


@app.get("/api/rank/me")
async def get_my_rank(request: Request):
    """Rank for the authenticated caller."""
    user = get_user_from_auth_data(request)
    return build_rank_payload(user["user_id"], user["email"])


@app.get("/api/rank/{user_id}")
async def get_rank(user_id: int):
    return build_rank_payload(user_id)


@app.post("/api/activity")
async def record_activity(request: Request):
    """Heartbeat: mark the caller online and refresh streak and pulse."""
    user = get_user_from_auth_data(request)
    store = get_store()
    await store.touch_user(user["user_id"], is_online=True)
    return await store.update_activity(user["user_id"])


@app.post("/api/forum/xp")
async def award_forum_xp(body: ForumActionRequest, request: Request):
    user = get_user_from_auth_data(request)
    store = get_store()
    ok, reason, xp = await store.record_forum_action(
        user["user_id"], body.action, body.word_count, body.has_media
    )
    if not ok:
        raise_for_reason(reason)
    return {"ok": True, "xp_awarded": xp, "forum_xp": store.get_profile(user["user_id"])["forum_xp"]}


@app.get("/api/leaderboard")
async def get_leaderboard(request: Request):
    store = get_store()
    category = request.query_params.get("category", "total_donated")
    if category not in LEADERBOARD_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    try:
        limit = int(request.query_params.get("limit", 10))
        user_id = request.query_params.get("user_id")
        user_id = int(user_id) if user_id else None
    except ValueError:
        raise HTTPException(status_code=400, detail="limit and user_id must be integers")

    logger.info(f"Fetching leaderboard for category: {category}, limit: {limit}")
    return {
        "leaderboard": store.get_leaderboard(category, limit),
        "user_position": store.get_leaderboard_position(user_id, category) if user_id else None,
        "category": category,
    }


@app.get("/api/titles/{user_id}")
async def get_titles(user_id: int):
    titles = get_store().get_user_titles(user_id)
    return {"titles": titles, "primary_title": pick_primary_title(titles)}


@app.post("/api/titles/primary")
async def set_primary_title(body: PrimaryTitleRequest, request: Request):
    user = get_user_from_auth_data(request)
    ok, reason = await get_store().set_primary_title(user["user_id"], body.title_id)
    if not ok:
        raise_for_reason(reason)
    return {"ok": True}


@app.post("/api/titles/display")
async def set_title_display(body: TitleDisplayRequest, request: Request):
    user = get_user_from_auth_data(request)
    ok, reason = await get_store().set_title_display(
        user["user_id"], body.title_id, body.is_displayed
    )
    if not ok:
        raise_for_reason(reason)
    return {"ok": True}


@app.get("/api/admin/analytics")
async def get_admin_analytics(request: Request):
    user = require_admin(request)
    logger.info(f"Admin {user['user_id']} fetched analytics")
    return get_store().get_analytics()


@app.post("/api/admin/recalculate")
async def recalculate(request: Request):
    user = require_admin(request)
    processed = await get_store().recalculate_all()
    logger.info(f"Admin {user['user_id']} triggered recalculation of {processed} users")
    return {"ok": True, "users_processed": processed}


# ---- Tactical ----

def _game_state(game_id: int) -> Dict[str, Any]:
    store = get_store()
    game = store.get_game(game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return {
        "game": game,
        "ships": store.get_ships(game_id),
        "pending_moves": store.get_moves(game_id, turn=game["current_turn"], status="pending"),
        "events": store.get_events(game_id),
    }


@app.post("/api/tactical/games")
async def create_game(body: CreateGameRequest, request: Request):
    user = get_user_from_auth_data(request)
    game_id = await get_store().create_game(body.name, user["user_id"])
    return _game_state(game_id)


@app.get("/api/tactical/games/{game_id}")
async def get_game(game_id: int, request: Request):
    get_user_from_auth_data(request)
    return _game_state(game_id)


@app.post("/api/tactical/games/{game_id}/ships")
async def add_ship(game_id: int, body: AddShipRequest, request: Request):
    user = get_user_from_auth_data(request)
    store = get_store()
    owner = body.owner_user_id or user["user_id"]
    game = store.get_game(game_id)
    if game and owner != user["user_id"] and not store.can_direct(game, user["user_id"]):
        raise HTTPException(status_code=403, detail="not_gm")
    ship_id, reason = await store.add_ship(game_id, owner, body.name, body.max_hull, body.shields)
    if ship_id is None:
        raise_for_reason(reason)
    return {"ok": True, "ship": store.get_ship(ship_id)}


@app.post("/api/tactical/games/{game_id}/moves")
async def submit_move(game_id: int, body: SubmitMoveRequest, request: Request):
    user = get_user_from_auth_data(request)
    if not body.actions:
        raise HTTPException(status_code=400, detail="A move needs at least one action")
    move_id, reason = await get_store().submit_move(
        game_id, body.ship_id, user["user_id"], body.actions
    )
    if move_id is None:
        raise_for_reason(reason)
    return {"ok": True, "move_id": move_id}


@app.post("/api/tactical/moves/{move_id}/resolve")
async def resolve_move(move_id: int, body: ResolveMoveRequest, request: Request):
    user = get_user_from_auth_data(request)
    outcome = Outcome(
        damage=body.damage,
        shield_delta=body.shield_delta,
        event_kind=body.event_kind,
        note=body.note,
    )
    ok, reason = await get_store().resolve_move(move_id, user["user_id"], outcome)
    if not ok:
        raise_for_reason(reason)
    return {"ok": True}


@app.post("/api/tactical/games/{game_id}/lock")
async def lock_turn(game_id: int, request: Request):
    user = get_user_from_auth_data(request)
    ok, reason = await get_store().lock_turn(game_id, user["user_id"])
    if not ok:
        raise_for_reason(reason)
    return {"ok": True}


@app.post("/api/tactical/games/{game_id}/end-turn")
async def end_turn(game_id: int, request: Request):
    user = get_user_from_auth_data(request)
    ok, reason = await get_store().end_turn(game_id, user["user_id"])
    if not ok:
        raise_for_reason(reason)
    return _game_state(game_id)


@app.websocket("/ws/tactical/{game_id}")
async def tactical_feed(websocket: WebSocket, game_id: int):
    """Push change notices for a game; clients refetch state on each one."""
    if not get_store().get_game(game_id):
        await websocket.close(code=4404)
        return

    # A full queue makes put_nowait raise, and the bus then drops the subscriber
    queue: asyncio.Queue = asyncio.Queue(maxsize=FEED_QUEUE_SIZE)
    bus = get_bus()
    sub_id = bus.subscribe(channel_for(game_id), queue.put_nowait)

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    sender: Optional[asyncio.Task] = None
    try:
        await websocket.accept()
        logger.info(f"Realtime subscriber {sub_id} joined game {game_id}")
        sender = asyncio.create_task(forward())
        # Clients only listen; reading here notices disconnects right away
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Realtime subscriber {sub_id} left game {game_id}")
    finally:
        if sender is not None:
            sender.cancel()
        bus.unsubscribe(sub_id)
