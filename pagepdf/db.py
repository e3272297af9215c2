import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional


DB_PATH = Path("storage/admins.db")


@dataclass
class AdminRecord:
    user_id: str
    is_original: bool = False
    created_at: Optional[str] = None


class AdminDirectory:
    """
    Keyed store of authorized user ids. Exactly one record is flagged original;
    that record is only ever set through ensure_original().
    """

    def __init__(self, path: Path = DB_PATH):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def init(self):
        with self._conn() as con:
            cur = con.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS admins (
                    user_id TEXT PRIMARY KEY,
                    is_original INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT
                )
                """
            )
            con.commit()

    @contextmanager
    def _conn(self):
        con = sqlite3.connect(self.path)
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _row_to_record(row) -> AdminRecord:
        return AdminRecord(user_id=row[0], is_original=bool(row[1]), created_at=row[2])

    def ensure_original(self, user_id: str) -> AdminRecord:
        """
        Idempotent bootstrap: make user_id the single original admin.
        """
        user_id = str(user_id)
        now = datetime.utcnow().isoformat() + "Z"
        with self._conn() as con:
            cur = con.cursor()
            cur.execute("UPDATE admins SET is_original=0 WHERE user_id<>?", (user_id,))
            cur.execute(
                "INSERT INTO admins(user_id, is_original, created_at) VALUES(?, 1, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET is_original=1",
                (user_id, now),
            )
            con.commit()
        return AdminRecord(user_id=user_id, is_original=True)

    def find_by_user_id(self, user_id: str) -> Optional[AdminRecord]:
        with self._conn() as con:
            cur = con.cursor()
            row = cur.execute(
                "SELECT user_id, is_original, created_at FROM admins WHERE user_id=?", (str(user_id),)
            ).fetchone()
            if not row:
                return None
            return self._row_to_record(row)

    def find_original(self) -> Optional[AdminRecord]:
        with self._conn() as con:
            cur = con.cursor()
            row = cur.execute(
                "SELECT user_id, is_original, created_at FROM admins WHERE is_original=1 LIMIT 1"
            ).fetchone()
            if not row:
                return None
            return self._row_to_record(row)

    def insert(self, record: AdminRecord) -> bool:
        """
        Returns False when the user id is already present. New records are never original.
        """
        with self._conn() as con:
            cur = con.cursor()
            cur.execute(
                "INSERT OR IGNORE INTO admins(user_id, is_original, created_at) VALUES(?, 0, ?)",
                (str(record.user_id), record.created_at or datetime.utcnow().isoformat() + "Z"),
            )
            con.commit()
            return cur.rowcount > 0

    def delete_by_user_id(self, user_id: str) -> bool:
        with self._conn() as con:
            cur = con.cursor()
            cur.execute("DELETE FROM admins WHERE user_id=? AND is_original=0", (str(user_id),))
            con.commit()
            return cur.rowcount > 0

