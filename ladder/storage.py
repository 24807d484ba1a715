import datetime
import logging
import pickle
import sqlite3
from pathlib import Path
from typing import Generator
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras
import redis

from .config import (
    DB_FILE,
    get_database_url,
    get_redis_url,
    get_cache_ttl,
)
from .models import (
    User,
    Ladder,
    LadderMembership,
    Match,
    TeamResult,
    TEAM_A,
    TEAM_B,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
)

logger = logging.getLogger(__name__)

# ``DB_FILE`` is imported from ``ladder.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")

# Optional Redis cache for ladder standings
REDIS_URL = get_redis_url()
CACHE_TTL = get_cache_ttl()
_redis = None
if REDIS_URL:
    try:
        _redis = redis.from_url(REDIS_URL)
    except redis.RedisError:
        logger.warning("Redis unavailable at %s, caching disabled", REDIS_URL)
        _redis = None

# errors that mean the store itself failed rather than the request
STORE_ERRORS = (sqlite3.OperationalError, psycopg2.OperationalError)


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def executemany(self, query, seq):
        q = query.replace("?", "%s")
        self._c.executemany(q, seq)
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


# ladders whose cached standings must be dropped once a transaction commits,
# keyed by connection
_pending_ladders: dict[int, set[str]] = {}


def _standings_key(ladder_id: str) -> str:
    return f"ladder:standings:{ladder_id}"


# bumped on every invalidation so loads that raced a write are not cached
def _generation_key(ladder_id: str) -> str:
    return f"ladder:standings:gen:{ladder_id}"


def _load_cache(key: str):
    if not _redis:
        return None
    try:
        data = _redis.get(key)
        if data is not None:
            return pickle.loads(data)
    except redis.RedisError:
        logger.debug("cache read failed for %s", key, exc_info=True)
    return None


def invalidate_standings(ladder_id: str) -> None:
    if not _redis:
        return
    try:
        with _redis.pipeline() as pipe:
            pipe.incr(_generation_key(ladder_id))
            pipe.delete(_standings_key(ladder_id))
            pipe.execute()
    except redis.RedisError:
        logger.debug("cache delete failed for %s", ladder_id, exc_info=True)


def _refresh_after_write(conn) -> None:
    """Drop cached standings touched by the committed transaction."""
    for ladder_id in _pending_ladders.pop(id(conn), set()):
        invalidate_standings(ladder_id)


def _touch_ladder(ladder_id: str, conn, close: bool) -> None:
    if close:
        invalidate_standings(ladder_id)
    else:
        _pending_ladders.setdefault(id(conn), set()).add(ladder_id)


def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        _init_schema(conn)
        return _PgConnection(conn)
    path = DB_FILE
    if DATABASE_URL.startswith("sqlite://"):
        path = Path(urlparse(DATABASE_URL).path)
    conn = sqlite3.connect(path, timeout=10)
    conn.row_factory = sqlite3.Row
    _init_schema(conn)
    return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection with an active transaction."""
    conn = _connect()
    if not IS_PG:
        # hold the write lock for the whole transaction
        conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.commit()
        _refresh_after_write(conn)
    except Exception:
        conn.rollback()
        _pending_ladders.pop(id(conn), None)
        raise
    finally:
        conn.close()


def _insert(cur, query: str, params) -> int:
    """Run an INSERT and return the new row id."""
    if IS_PG:
        cur.execute(query + " RETURNING id", params)
        return cur.fetchone()["id"]
    cur.execute(query, params)
    return cur.lastrowid


def _init_schema(conn) -> None:
    cur = conn.cursor()
    id_col = "SERIAL PRIMARY KEY" if IS_PG else "INTEGER PRIMARY KEY AUTOINCREMENT"
    cur.execute(
        """CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT,
        phone TEXT,
        password_hash TEXT,
        is_admin INTEGER DEFAULT 0
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS ladders (
        ladder_id TEXT PRIMARY KEY,
        name TEXT,
        type TEXT,
        fee REAL DEFAULT 0,
        created_at TEXT
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS ladder_memberships (
        id {id_col},
        ladder_id TEXT,
        user_id TEXT,
        join_date TEXT,
        current_rank INTEGER,
        score INTEGER DEFAULT 100,
        winning_streak INTEGER DEFAULT 0,
        trend TEXT DEFAULT 'none',
        is_active INTEGER DEFAULT 1,
        UNIQUE (ladder_id, user_id)
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS matches (
        id {id_col},
        ladder_id TEXT,
        week INTEGER,
        player1_id TEXT,
        player2_id TEXT,
        player3_id TEXT,
        player4_id TEXT,
        status TEXT,
        created_at TEXT,
        completed_at TEXT,
        team_a_score TEXT,
        team_a_winner TEXT,
        team_a_submitted_by TEXT,
        team_a_submitted_at TEXT,
        team_b_score TEXT,
        team_b_winner TEXT,
        team_b_submitted_by TEXT,
        team_b_submitted_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT,
        ts TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS refresh_tokens (
        user_id TEXT PRIMARY KEY,
        token TEXT,
        expires TEXT
    )"""
    )
    conn.commit()


def _dt(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


# --- users -----------------------------------------------------------------

def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        name=row["name"],
        password_hash=row["password_hash"] or "",
        email=row["email"] or "",
        phone=row["phone"],
        is_admin=bool(row["is_admin"]),
    )


def create_user(user: User, conn: sqlite3.Connection | None = None) -> None:
    """Insert a new user record."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO users(user_id, name, email, phone, password_hash, is_admin) VALUES (?,?,?,?,?,?)",
        (
            user.user_id,
            user.name,
            user.email,
            user.phone,
            user.password_hash,
            int(user.is_admin),
        ),
    )
    if close:
        conn.commit()
        conn.close()


def update_user_record(user: User, conn: sqlite3.Connection | None = None) -> None:
    """Update fields of a :class:`User` record."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE users SET
            name = ?,
            email = ?,
            phone = ?,
            password_hash = ?,
            is_admin = ?
        WHERE user_id = ?
        """,
        (
            user.name,
            user.email,
            user.phone,
            user.password_hash,
            int(user.is_admin),
            user.user_id,
        ),
    )
    if close:
        conn.commit()
        conn.close()


def get_user(user_id: str, conn: sqlite3.Connection | None = None) -> User | None:
    """Return a single :class:`User` by id or ``None`` if not found."""
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        "SELECT * FROM users WHERE user_id = ?", (user_id,)
    ).fetchone()
    if close:
        conn.close()
    return _row_to_user(row) if row else None


def get_users(user_ids: list[str], conn: sqlite3.Connection | None = None) -> dict[str, User]:
    """Return the users in ``user_ids`` keyed by id."""
    if not user_ids:
        return {}
    close = conn is None
    if conn is None:
        conn = _connect()
    marks = ",".join("?" for _ in user_ids)
    rows = conn.cursor().execute(
        f"SELECT * FROM users WHERE user_id IN ({marks})", list(user_ids)
    ).fetchall()
    if close:
        conn.close()
    return {row["user_id"]: _row_to_user(row) for row in rows}


def find_user_by_email(email: str) -> User | None:
    conn = _connect()
    row = conn.cursor().execute(
        "SELECT * FROM users WHERE lower(email) = lower(?)", (email,)
    ).fetchone()
    conn.close()
    return _row_to_user(row) if row else None


# --- tokens ----------------------------------------------------------------

def _upsert(table: str, key: str, values: dict) -> None:
    """Insert a row or overwrite the one sharing ``key``."""
    cols = list(values)
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in cols if c != key)
    conn = _connect()
    conn.cursor().execute(
        f"INSERT INTO {table}({', '.join(cols)}) VALUES ({','.join('?' for _ in cols)}) "
        f"ON CONFLICT ({key}) DO UPDATE SET {updates}",
        [values[c] for c in cols],
    )
    conn.commit()
    conn.close()


def _delete_where(table: str, column: str, value: str) -> None:
    conn = _connect()
    conn.cursor().execute(f"DELETE FROM {table} WHERE {column} = ?", (value,))
    conn.commit()
    conn.close()


def _fetch_pair(query: str, value: str) -> tuple[str, datetime.datetime] | None:
    conn = _connect()
    row = conn.cursor().execute(query, (value,)).fetchone()
    conn.close()
    if not row:
        return None
    return row["user_id"], datetime.datetime.fromisoformat(row["stamp"])


def insert_token(token: str, user_id: str) -> None:
    """Store an access token issued now."""
    _upsert(
        "auth_tokens",
        "token",
        {"token": token, "user_id": user_id, "ts": datetime.datetime.utcnow().isoformat()},
    )


def delete_token(token: str) -> None:
    _delete_where("auth_tokens", "token", token)


def get_token(token: str) -> tuple[str, datetime.datetime] | None:
    """Return ``(user_id, issued_at)`` for an access token."""
    return _fetch_pair("SELECT user_id, ts AS stamp FROM auth_tokens WHERE token = ?", token)


def insert_refresh_token(user_id: str, token: str, expires: datetime.datetime) -> None:
    """Store the single refresh token of ``user_id``, replacing any older one."""
    _upsert(
        "refresh_tokens",
        "user_id",
        {"user_id": user_id, "token": token, "expires": expires.isoformat()},
    )


def get_refresh_token(token: str) -> tuple[str, datetime.datetime] | None:
    """Return ``(user_id, expires)`` for a refresh token."""
    return _fetch_pair("SELECT user_id, expires AS stamp FROM refresh_tokens WHERE token = ?", token)


def delete_refresh_token(user_id: str) -> None:
    _delete_where("refresh_tokens", "user_id", user_id)


# --- ladders ---------------------------------------------------------------

def _row_to_ladder(row) -> Ladder:
    return Ladder(
        ladder_id=row["ladder_id"],
        name=row["name"],
        type=row["type"],
        fee=row["fee"] or 0.0,
        created_at=_dt(row["created_at"]) or datetime.datetime.utcnow(),
    )


def create_ladder(ladder: Ladder, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute(
        "INSERT INTO ladders(ladder_id, name, type, fee, created_at) VALUES (?,?,?,?,?)",
        (
            ladder.ladder_id,
            ladder.name,
            ladder.type,
            ladder.fee,
            ladder.created_at.isoformat(),
        ),
    )
    if close:
        conn.commit()
        conn.close()


def get_ladder(ladder_id: str) -> Ladder | None:
    conn = _connect()
    row = conn.cursor().execute(
        "SELECT * FROM ladders WHERE ladder_id = ?", (ladder_id,)
    ).fetchone()
    conn.close()
    return _row_to_ladder(row) if row else None


def list_ladders() -> list[Ladder]:
    conn = _connect()
    rows = conn.cursor().execute("SELECT * FROM ladders ORDER BY name").fetchall()
    conn.close()
    return [_row_to_ladder(r) for r in rows]


# --- memberships -----------------------------------------------------------

def _row_to_membership(row) -> LadderMembership:
    return LadderMembership(
        id=row["id"],
        ladder_id=row["ladder_id"],
        user_id=row["user_id"],
        current_rank=row["current_rank"],
        score=row["score"],
        winning_streak=row["winning_streak"],
        trend=row["trend"],
        is_active=bool(row["is_active"]),
        join_date=datetime.date.fromisoformat(row["join_date"])
        if row["join_date"]
        else datetime.date.today(),
    )


def create_membership(membership: LadderMembership, conn: sqlite3.Connection | None = None) -> int:
    """Insert a membership and return the new row id."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    row_id = _insert(
        cur,
        """
        INSERT INTO ladder_memberships(
            ladder_id, user_id, join_date, current_rank, score, winning_streak, trend, is_active
        ) VALUES (?,?,?,?,?,?,?,?)
        """,
        (
            membership.ladder_id,
            membership.user_id,
            membership.join_date.isoformat(),
            membership.current_rank,
            membership.score,
            membership.winning_streak,
            membership.trend,
            int(membership.is_active),
        ),
    )
    membership.id = row_id
    if close:
        conn.commit()
        conn.close()
    _touch_ladder(membership.ladder_id, conn, close)
    return row_id


def update_membership_record(membership: LadderMembership, conn: sqlite3.Connection | None = None) -> None:
    """Write every mutable field of a membership."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE ladder_memberships SET
            current_rank = ?,
            score = ?,
            winning_streak = ?,
            trend = ?,
            is_active = ?
        WHERE id = ?
        """,
        (
            membership.current_rank,
            membership.score,
            membership.winning_streak,
            membership.trend,
            int(membership.is_active),
            membership.id,
        ),
    )
    if cur.rowcount != 1:
        raise RuntimeError(f"Membership {membership.id} was not updated")
    if close:
        conn.commit()
        conn.close()
    _touch_ladder(membership.ladder_id, conn, close)


def set_membership_ranks(ladder_id: str, ranks: dict[int, int], conn: sqlite3.Connection | None = None) -> None:
    """Assign ``ranks`` (membership id -> rank) within one ladder."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    for membership_id, rank in ranks.items():
        cur.execute(
            "UPDATE ladder_memberships SET current_rank = ? WHERE id = ? AND ladder_id = ? AND is_active = 1",
            (rank, membership_id, ladder_id),
        )
        if cur.rowcount != 1:
            raise RuntimeError(f"Membership {membership_id} was not updated")
    if close:
        conn.commit()
        conn.close()
    _touch_ladder(ladder_id, conn, close)


def lock_ladder(ladder_id: str, conn) -> None:
    """Serialize rank-changing transactions on one ladder.

    On PostgreSQL the ladder row is locked until commit. sqlite transactions
    already hold the database write lock from ``BEGIN IMMEDIATE``.
    """
    if IS_PG:
        conn.cursor().execute("SELECT 1 FROM ladders WHERE ladder_id = ? FOR UPDATE", (ladder_id,))


def get_membership(ladder_id: str, user_id: str, conn: sqlite3.Connection | None = None) -> LadderMembership | None:
    """Return the membership of ``user_id`` in ``ladder_id`` (active or not)."""
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        "SELECT * FROM ladder_memberships WHERE ladder_id = ? AND user_id = ?",
        (ladder_id, user_id),
    ).fetchone()
    if close:
        conn.close()
    return _row_to_membership(row) if row else None


def get_memberships_for(
    ladder_id: str, user_ids: list[str], conn: sqlite3.Connection | None = None
) -> dict[str, LadderMembership]:
    close = conn is None
    if conn is None:
        conn = _connect()
    marks = ",".join("?" for _ in user_ids)
    rows = conn.cursor().execute(
        f"SELECT * FROM ladder_memberships WHERE ladder_id = ? AND user_id IN ({marks})",
        [ladder_id, *user_ids],
    ).fetchall()
    if close:
        conn.close()
    return {row["user_id"]: _row_to_membership(row) for row in rows}


def max_active_rank(ladder_id: str, conn: sqlite3.Connection | None = None) -> int:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        "SELECT MAX(current_rank) AS max_rank FROM ladder_memberships WHERE ladder_id = ? AND is_active = 1",
        (ladder_id,),
    ).fetchone()
    if close:
        conn.close()
    return (row["max_rank"] if row else None) or 0


def load_active_memberships(ladder_id: str, conn: sqlite3.Connection | None = None) -> list[LadderMembership]:
    """Load active memberships of a ladder from the database, ranked first."""
    close = conn is None
    if conn is None:
        conn = _connect()
    rows = conn.cursor().execute(
        """
        SELECT * FROM ladder_memberships
        WHERE ladder_id = ? AND is_active = 1
        ORDER BY CASE WHEN current_rank IS NULL THEN 1 ELSE 0 END, current_rank, id
        """,
        (ladder_id,),
    ).fetchall()
    if close:
        conn.close()
    return [_row_to_membership(r) for r in rows]


def list_active_memberships(ladder_id: str) -> list[LadderMembership]:
    """Return active memberships ordered by rank, using the cache when possible."""
    key = _standings_key(ladder_id)
    cached = _load_cache(key)
    if cached is not None:
        return cached
    if not _redis:
        return load_active_memberships(ladder_id)
    memberships = None
    try:
        with _redis.pipeline() as pipe:
            # EXEC fails if the ladder was invalidated while loading
            pipe.watch(_generation_key(ladder_id))
            memberships = load_active_memberships(ladder_id)
            pipe.multi()
            pipe.setex(key, CACHE_TTL, pickle.dumps(memberships))
            pipe.execute()
    except redis.WatchError:
        logger.debug("standings of %s changed while loading, not cached", ladder_id)
    except redis.RedisError:
        logger.debug("cache write failed for %s", key, exc_info=True)
    if memberships is None:
        memberships = load_active_memberships(ladder_id)
    return memberships


def list_user_memberships(user_id: str) -> list[LadderMembership]:
    conn = _connect()
    rows = conn.cursor().execute(
        "SELECT * FROM ladder_memberships WHERE user_id = ? ORDER BY ladder_id",
        (user_id,),
    ).fetchall()
    conn.close()
    return [_row_to_membership(r) for r in rows]


# --- matches ---------------------------------------------------------------

_TEAM_PREFIX = {TEAM_A: "team_a", TEAM_B: "team_b"}


def _row_to_result(row, prefix: str) -> TeamResult | None:
    if row[f"{prefix}_submitted_by"] is None:
        return None
    return TeamResult(
        score=row[f"{prefix}_score"],
        winner=row[f"{prefix}_winner"],
        submitted_by=row[f"{prefix}_submitted_by"],
        submitted_at=_dt(row[f"{prefix}_submitted_at"]),
    )


def _row_to_match(row) -> Match:
    return Match(
        id=row["id"],
        ladder_id=row["ladder_id"],
        week=row["week"],
        player1_id=row["player1_id"],
        player2_id=row["player2_id"],
        player3_id=row["player3_id"],
        player4_id=row["player4_id"],
        status=row["status"],
        created_at=_dt(row["created_at"]) or datetime.datetime.utcnow(),
        completed_at=_dt(row["completed_at"]),
        team_a=_row_to_result(row, "team_a"),
        team_b=_row_to_result(row, "team_b"),
    )


def create_match(match: Match, conn: sqlite3.Connection | None = None) -> int:
    """Insert a scheduled match and return its id."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    row_id = _insert(
        cur,
        """
        INSERT INTO matches(
            ladder_id, week, player1_id, player2_id, player3_id, player4_id, status, created_at
        ) VALUES (?,?,?,?,?,?,?,?)
        """,
        (
            match.ladder_id,
            match.week,
            match.player1_id,
            match.player2_id,
            match.player3_id,
            match.player4_id,
            match.status,
            match.created_at.isoformat(),
        ),
    )
    match.id = row_id
    if close:
        conn.commit()
        conn.close()
    return row_id


def get_match(match_id: int, conn: sqlite3.Connection | None = None) -> Match | None:
    """Fetch a single match by id."""
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        "SELECT * FROM matches WHERE id = ?", (match_id,)
    ).fetchone()
    if close:
        conn.close()
    return _row_to_match(row) if row else None


def list_matches(
    ladder_id: str | None = None,
    *,
    user_id: str | None = None,
    week: int | None = None,
    status: str | None = None,
) -> list[Match]:
    """Return matches filtered by ladder, participant, week and status."""
    clauses = []
    params: list = []
    if ladder_id is not None:
        clauses.append("ladder_id = ?")
        params.append(ladder_id)
    if user_id is not None:
        clauses.append("(player1_id = ? OR player2_id = ? OR player3_id = ? OR player4_id = ?)")
        params.extend([user_id] * 4)
    if week is not None:
        clauses.append("week = ?")
        params.append(week)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    conn = _connect()
    rows = conn.cursor().execute(
        f"SELECT * FROM matches {where} ORDER BY week DESC, id DESC", params
    ).fetchall()
    conn.close()
    return [_row_to_match(r) for r in rows]


def claim_team_result(match_id: int, team: str, result: TeamResult, conn: sqlite3.Connection | None = None) -> bool:
    """Store ``team``'s result unless it already has one or the match is done.

    Returns ``True`` when the row was written.
    """
    prefix = _TEAM_PREFIX[team]
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        f"""
        UPDATE matches SET
            {prefix}_score = ?,
            {prefix}_winner = ?,
            {prefix}_submitted_by = ?,
            {prefix}_submitted_at = ?
        WHERE id = ? AND {prefix}_submitted_by IS NULL AND status != ?
        """,
        (
            result.score,
            result.winner,
            result.submitted_by,
            result.submitted_at.isoformat(),
            match_id,
            STATUS_COMPLETED,
        ),
    )
    written = cur.rowcount == 1
    if close:
        conn.commit()
        conn.close()
    return written


def complete_match(match: Match, conn: sqlite3.Connection | None = None) -> bool:
    """Write ``match``'s results and completed status if not already completed.

    The ``status != 'completed'`` guard makes finalization happen at most once
    even when two requests race. Returns ``True`` when this call completed it.
    """
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    a, b = match.team_a, match.team_b
    cur.execute(
        """
        UPDATE matches SET
            status = ?,
            completed_at = ?,
            team_a_score = ?,
            team_a_winner = ?,
            team_a_submitted_by = ?,
            team_a_submitted_at = ?,
            team_b_score = ?,
            team_b_winner = ?,
            team_b_submitted_by = ?,
            team_b_submitted_at = ?
        WHERE id = ? AND status != ?
        """,
        (
            STATUS_COMPLETED,
            (match.completed_at or datetime.datetime.utcnow()).isoformat(),
            a.score,
            a.winner,
            a.submitted_by,
            a.submitted_at.isoformat(),
            b.score,
            b.winner,
            b.submitted_by,
            b.submitted_at.isoformat(),
            match.id,
            STATUS_COMPLETED,
        ),
    )
    done = cur.rowcount == 1
    if close:
        conn.commit()
        conn.close()
    return done


def delete_match_record(match_id: int, conn: sqlite3.Connection | None = None) -> bool:
    """Delete a match that has not been completed. Returns ``True`` if removed."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "DELETE FROM matches WHERE id = ? AND status = ?",
        (match_id, STATUS_SCHEDULED),
    )
    removed = cur.rowcount == 1
    if close:
        conn.commit()
        conn.close()
    return removed
