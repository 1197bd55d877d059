import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import DuplicateName

logger = logging.getLogger(__name__)

PORT_CLAIM_ATTEMPTS = 3


@dataclass(frozen=True)
class ServerRecord:
    id: int
    name: str
    version: str
    difficulty: str
    port: int
    started: bool


class ServerStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def init_db(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS servers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    version TEXT NOT NULL DEFAULT 'latest',
                    difficulty TEXT NOT NULL DEFAULT 'easy',
                    port INTEGER UNIQUE NOT NULL,
                    started INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )

    def name_exists(self, name: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT EXISTS(SELECT 1 FROM servers WHERE name = ?)", (name,)
            ).fetchone()
        return bool(row[0])

    def used_ports(self) -> list[int]:
        with self._connect() as conn:
            rows = conn.execute("SELECT port FROM servers ORDER BY port ASC").fetchall()
        return [row["port"] for row in rows]

    def insert_server(
        self,
        name: str,
        version: str,
        difficulty: str,
        choose_port: Callable[[list[int]], int],
    ) -> ServerRecord:
        """Claim ``name`` and a port in a single write transaction.

        The name check, the port scan and the insert all run while holding
        the database write lock, so two concurrent callers can never both
        succeed with the same name or the same port.
        """
        for _ in range(PORT_CLAIM_ATTEMPTS):
            conn = self._connect(autocommit=True)
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    exists = conn.execute(
                        "SELECT EXISTS(SELECT 1 FROM servers WHERE name = ?)", (name,)
                    ).fetchone()[0]
                    if exists:
                        raise DuplicateName(f"A server named {name} already exists")
                    used = [
                        row["port"]
                        for row in conn.execute(
                            "SELECT port FROM servers ORDER BY port ASC"
                        ).fetchall()
                    ]
                    port = choose_port(used)
                    cursor = conn.execute(
                        """
                        INSERT INTO servers (name, version, difficulty, port, started, created_at)
                        VALUES (?, ?, ?, ?, 0, ?)
                        """,
                        (name, version, difficulty, port, self._now().isoformat()),
                    )
                    server_id = cursor.lastrowid
                    conn.execute("COMMIT")
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
            except sqlite3.IntegrityError as exc:
                # Another writer outside this transaction's view got there first.
                if "servers.name" in str(exc):
                    raise DuplicateName(f"A server named {name} already exists") from exc
                logger.warning("Port claim for %s collided, retrying: %s", name, exc)
                continue
            finally:
                conn.close()
            return ServerRecord(
                id=server_id,
                name=name,
                version=version,
                difficulty=difficulty,
                port=port,
                started=False,
            )
        raise sqlite3.IntegrityError(f"Unable to claim a unique port for {name}")

    def get_server(self, name: str) -> Optional[ServerRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, version, difficulty, port, started FROM servers WHERE name = ?",
                (name,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def list_servers(self) -> list[ServerRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, version, difficulty, port, started FROM servers ORDER BY id ASC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: sqlite3.Row) -> ServerRecord:
        return ServerRecord(
            id=row["id"],
            name=row["name"],
            version=row["version"],
            difficulty=row["difficulty"],
            port=row["port"],
            started=bool(row["started"]),
        )

    def _connect(self, autocommit: bool = False) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        if autocommit:
            conn.isolation_level = None
        conn.row_factory = sqlite3.Row
        return conn

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)
