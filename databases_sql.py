# SQLite storage. Creates tables if missing and provides helper functions.
# Ledger-facing helpers take the cursor of an open transaction() so that a
# booking change and its capacity adjustment commit or roll back together.

import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import List, Dict, Any, Optional

import config
from errors import NotFound, InvalidClassChange
from utils import utc_now, to_utc_iso

DB_PATH: Path = config.DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'member'
        CHECK (role IN ('admin', 'instructor', 'member')),
    created_at_utc TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS classes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    instructor_id INTEGER NOT NULL REFERENCES users(id),
    start_utc TEXT NOT NULL,
    end_utc TEXT NOT NULL,
    max_capacity INTEGER NOT NULL DEFAULT 20 CHECK (max_capacity > 0),
    current_capacity INTEGER NOT NULL DEFAULT 0,
    price TEXT NOT NULL CHECK (CAST(price AS REAL) >= 0),
    created_at_utc TEXT NOT NULL,
    CHECK (start_utc < end_utc),
    CHECK (current_capacity BETWEEN 0 AND max_capacity)
);

CREATE TABLE IF NOT EXISTS bookings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    class_id INTEGER NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'confirmed'
        CHECK (status IN ('confirmed', 'waitlist', 'cancelled')),
    booking_date_utc TEXT NOT NULL,
    created_at_utc TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_bookings_class ON bookings(class_id);
CREATE INDEX IF NOT EXISTS ix_bookings_user ON bookings(user_id);
CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_confirmed_once
    ON bookings(user_id, class_id) WHERE status = 'confirmed';
"""

CLASS_SELECT = """
SELECT c.*, u.first_name || ' ' || u.last_name AS instructor_name
FROM classes c JOIN users u ON c.instructor_id = u.id
"""

BOOKING_SELECT = """
SELECT b.*, c.title AS class_title, c.start_utc AS class_start_utc,
       c.end_utc AS class_end_utc, u.email AS user_email,
       u.first_name || ' ' || u.last_name AS user_name
FROM bookings b
JOIN classes c ON b.class_id = c.id
JOIN users u ON b.user_id = u.id
"""

CLASS_EDITABLE_COLUMNS = (
    "title", "description", "instructor_id", "start_utc", "end_utc", "max_capacity", "price",
)


def get_conn():
    # isolation_level=None: transactions are opened explicitly with BEGIN IMMEDIATE
    conn = sqlite3.connect(
        str(DB_PATH),
        timeout=config.SQLITE_TIMEOUT_SECONDS,
        check_same_thread=False,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db():
    conn = get_conn()
    with closing(conn):
        conn.executescript(SCHEMA)


@contextmanager
def transaction():
    """
    Yield a cursor inside a write transaction.

    BEGIN IMMEDIATE takes the database write lock up front, so concurrent
    writers queue on the busy timeout instead of interleaving their reads.
    """
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        try:
            yield cur
        except BaseException:
            if conn.in_transaction:
                conn.rollback()
            raise
        conn.commit()


def _now_iso() -> str:
    return to_utc_iso(utc_now())


def _one(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return dict(row) if row else None


# ---------- Ledger persistence interface ----------

def get_class_by_id(cur, class_id: int) -> Optional[Dict[str, Any]]:
    cur.execute(CLASS_SELECT + " WHERE c.id = ?", (class_id,))
    return _one(cur)


def get_user_by_id(cur, user_id: int) -> Optional[Dict[str, Any]]:
    cur.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    return _one(cur)


def get_booking_by_id(cur, booking_id: int) -> Optional[Dict[str, Any]]:
    cur.execute(BOOKING_SELECT + " WHERE b.id = ?", (booking_id,))
    return _one(cur)


def find_confirmed_booking(cur, user_id: int, class_id: int) -> Optional[Dict[str, Any]]:
    cur.execute(
        "SELECT * FROM bookings WHERE user_id = ? AND class_id = ? AND status = 'confirmed'",
        (user_id, class_id),
    )
    return _one(cur)


def insert_booking(cur, user_id: int, class_id: int, status: str, booking_date_utc: str) -> int:
    cur.execute(
        "INSERT INTO bookings (user_id, class_id, status, booking_date_utc, created_at_utc) "
        "VALUES (?, ?, ?, ?, ?)",
        (user_id, class_id, status, booking_date_utc, _now_iso()),
    )
    return cur.lastrowid


def update_class_capacity(cur, class_id: int, delta: int) -> bool:
    """
    Move current_capacity by delta, only if it stays within [0, max_capacity].
    Returns False when the guard rejected the change (class full or empty).
    """
    if delta >= 0:
        cur.execute(
            "UPDATE classes SET current_capacity = current_capacity + ? "
            "WHERE id = ? AND current_capacity + ? <= max_capacity",
            (delta, class_id, delta),
        )
    else:
        cur.execute(
            "UPDATE classes SET current_capacity = current_capacity + ? "
            "WHERE id = ? AND current_capacity + ? >= 0",
            (delta, class_id, delta),
        )
    return cur.rowcount == 1


def update_booking_status(cur, booking_id: int, status: str, expected_status: Optional[str] = None) -> bool:
    """Set a booking's status; with expected_status, only if it still has that status."""
    if expected_status is None:
        cur.execute("UPDATE bookings SET status = ? WHERE id = ?", (status, booking_id))
    else:
        cur.execute(
            "UPDATE bookings SET status = ? WHERE id = ? AND status = ?",
            (status, booking_id, expected_status),
        )
    return cur.rowcount == 1


# ---------- Users ----------

def insert_user(email: str, first_name: str, last_name: str, phone: Optional[str] = None,
                role: str = "member") -> int:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO users (email, first_name, last_name, phone, role, created_at_utc) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (email, first_name, last_name, phone, role, _now_iso()),
        )
        return cur.lastrowid


def list_users() -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute("SELECT * FROM users ORDER BY id")
        return [dict(r) for r in cur.fetchall()]


def get_user(user_id: int):
    conn = get_conn()
    with closing(conn):
        return get_user_by_id(conn.cursor(), user_id)


def get_user_by_email(email: str):
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute("SELECT * FROM users WHERE lower(email) = lower(?)", (email,))
        return _one(cur)


# ---------- Classes ----------

def insert_class(title: str, description: str, instructor_id: int, start_utc: str, end_utc: str,
                 max_capacity: int, price: str) -> int:
    if start_utc >= end_utc:
        raise InvalidClassChange("Class must start before it ends")
    with transaction() as cur:
        if get_user_by_id(cur, instructor_id) is None:
            raise NotFound("Instructor not found")
        cur.execute(
            "INSERT INTO classes (title, description, instructor_id, start_utc, end_utc, "
            "max_capacity, current_capacity, price, created_at_utc) "
            "VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)",
            (title, description, instructor_id, start_utc, end_utc, max_capacity, price, _now_iso()),
        )
        return cur.lastrowid


def list_classes() -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(CLASS_SELECT + " ORDER BY c.start_utc")
        return [dict(r) for r in cur.fetchall()]


def list_upcoming_classes(now_utc: str) -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(CLASS_SELECT + " WHERE c.start_utc >= ? ORDER BY c.start_utc", (now_utc,))
        return [dict(r) for r in cur.fetchall()]


def get_class(class_id: int):
    conn = get_conn()
    with closing(conn):
        return get_class_by_id(conn.cursor(), class_id)


def update_class(class_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply an owner edit. current_capacity is never written here; it belongs
    to the booking ledger.
    """
    unknown = set(changes) - set(CLASS_EDITABLE_COLUMNS)
    if unknown:
        raise InvalidClassChange(f"Cannot edit {', '.join(sorted(unknown))}")

    with transaction() as cur:
        existing = get_class_by_id(cur, class_id)
        if existing is None:
            raise NotFound("Class not found")
        if not changes:
            return existing

        merged = {**existing, **changes}
        if merged["start_utc"] >= merged["end_utc"]:
            raise InvalidClassChange("Class must start before it ends")
        if merged["max_capacity"] < existing["current_capacity"]:
            raise InvalidClassChange("max_capacity is below the number of confirmed bookings")
        if "instructor_id" in changes and get_user_by_id(cur, changes["instructor_id"]) is None:
            raise NotFound("Instructor not found")

        assignments = ", ".join(f"{col} = ?" for col in changes)
        cur.execute(
            f"UPDATE classes SET {assignments} WHERE id = ? AND current_capacity <= ?",
            (*changes.values(), class_id, merged["max_capacity"]),
        )
        if cur.rowcount != 1:
            raise InvalidClassChange("max_capacity is below the number of confirmed bookings")
        return get_class_by_id(cur, class_id)


def delete_class(class_id: int) -> None:
    with transaction() as cur:
        cur.execute("DELETE FROM classes WHERE id = ?", (class_id,))
        if cur.rowcount == 0:
            raise NotFound("Class not found")


def delete_classes_ended_before(now_utc: str) -> List[Dict[str, Any]]:
    """Delete finished classes (bookings cascade) and return what was removed."""
    with transaction() as cur:
        cur.execute(
            "SELECT id, title, end_utc FROM classes WHERE end_utc < ? ORDER BY end_utc",
            (now_utc,),
        )
        removed = [dict(r) for r in cur.fetchall()]
        cur.execute("DELETE FROM classes WHERE end_utc < ?", (now_utc,))
        return removed


# ---------- Bookings ----------

def list_bookings() -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(BOOKING_SELECT + " ORDER BY b.created_at_utc DESC, b.id DESC")
        return [dict(r) for r in cur.fetchall()]


def list_bookings_for_user(user_id: int) -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(
            BOOKING_SELECT + " WHERE b.user_id = ? ORDER BY b.created_at_utc DESC, b.id DESC",
            (user_id,),
        )
        return [dict(r) for r in cur.fetchall()]


def list_bookings_for_class(class_id: int) -> List[Dict[str, Any]]:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(BOOKING_SELECT + " WHERE b.class_id = ? ORDER BY b.id", (class_id,))
        return [dict(r) for r in cur.fetchall()]


def get_booking(booking_id: int):
    conn = get_conn()
    with closing(conn):
        return get_booking_by_id(conn.cursor(), booking_id)


def count_confirmed_bookings(class_id: int) -> int:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        cur.execute(
            "SELECT COUNT(*) FROM bookings WHERE class_id = ? AND status = 'confirmed'",
            (class_id,),
        )
        return cur.fetchone()[0]


def count_bookings(class_id: Optional[int] = None) -> int:
    conn = get_conn()
    with closing(conn):
        cur = conn.cursor()
        if class_id is None:
            cur.execute("SELECT COUNT(*) FROM bookings")
        else:
            cur.execute("SELECT COUNT(*) FROM bookings WHERE class_id = ?", (class_id,))
        return cur.fetchone()[0]
