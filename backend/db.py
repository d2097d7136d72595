from __future__ import annotations

import csv
import io
import json
import sqlite3
import threading
from typing import Dict, Iterable, List, Optional

from attention.session import FocusSession

SESSION_KEYS = [
    "id",
    "start_time",
    "end_time",
    "duration_looking_ms",
    "duration_away_ms",
    "focus_score",
    "activity",
    "sites",
    "remote_id",
]


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    start_time REAL,
                    end_time REAL,
                    duration_looking_ms INTEGER,
                    duration_away_ms INTEGER,
                    focus_score INTEGER,
                    activity TEXT,
                    sites TEXT,
                    remote_id TEXT
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_time);")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS app_totals (
                    app TEXT PRIMARY KEY,
                    ms INTEGER
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    ts REAL,
                    type TEXT,
                    details TEXT
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);")
            self.conn.commit()

    def save_session(self, record: FocusSession, remote_id: Optional[str] = None) -> int:
        """Stores a finalized session and merges its activity into the app totals."""
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO sessions (start_time, end_time, duration_looking_ms, duration_away_ms,
                                      focus_score, activity, sites, remote_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.start_time,
                    record.end_time,
                    record.duration_looking_ms,
                    record.duration_away_ms,
                    record.focus_score_percent,
                    json.dumps(record.activity),
                    json.dumps(record.sites),
                    remote_id,
                ),
            )
            session_id = int(cur.lastrowid)
            for app, ms in record.activity.items():
                cur.execute(
                    """
                    INSERT INTO app_totals (app, ms) VALUES (?, ?)
                    ON CONFLICT(app) DO UPDATE SET ms = ms + excluded.ms
                    """,
                    (app, int(ms)),
                )
            self.conn.commit()
        return session_id

    def set_remote_id(self, session_id: int, remote_id: str) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("UPDATE sessions SET remote_id = ? WHERE id = ?", (remote_id, session_id))
            self.conn.commit()

    def log_event(self, event_type: str, ts: float, details: Optional[str] = None) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "INSERT INTO events (ts, type, details) VALUES (?, ?, ?)",
                (ts, event_type, details or ""),
            )
            self.conn.commit()

    def _session_row(self, row: tuple) -> dict:
        item = dict(zip(SESSION_KEYS, row))
        item["activity"] = json.loads(item["activity"] or "{}")
        item["sites"] = json.loads(item["sites"] or "{}")
        return item

    def history(self, start_ms: float, end_ms: float) -> List[dict]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                f"""
                SELECT {", ".join(SESSION_KEYS)}
                FROM sessions WHERE start_time BETWEEN ? AND ? ORDER BY start_time ASC
                """,
                (start_ms, end_ms),
            )
            rows = cur.fetchall()
        return [self._session_row(row) for row in rows]

    def all_sessions(self) -> List[dict]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {', '.join(SESSION_KEYS)} FROM sessions ORDER BY start_time ASC")
            rows = cur.fetchall()
        return [self._session_row(row) for row in rows]

    def app_totals(self) -> Dict[str, int]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT app, ms FROM app_totals ORDER BY ms DESC")
            rows = cur.fetchall()
        return {app: int(ms) for app, ms in rows}

    def clear_app_totals(self) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("DELETE FROM app_totals")
            self.conn.commit()

    def events(self, start_ts: float, end_ts: float) -> List[dict]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "SELECT ts, type, details FROM events WHERE ts BETWEEN ? AND ? ORDER BY ts ASC",
                (start_ts, end_ts),
            )
            rows = cur.fetchall()
        keys = ["timestamp", "type", "details"]
        return [dict(zip(keys, row)) for row in rows]

    def export_csv(self, start_ms: float, end_ms: float) -> Iterable[bytes]:
        headers = ["id", "start_time", "end_time", "duration_looking_ms", "duration_away_ms", "focus_score", "activity"]
        yield ",".join(headers).encode() + b"\n"
        for row in self.history(start_ms, end_ms):
            buf = io.StringIO()
            writer = csv.DictWriter(buf, fieldnames=headers, extrasaction="ignore")
            writer.writerow({**row, "activity": json.dumps(row["activity"])})
            yield buf.getvalue().encode()
