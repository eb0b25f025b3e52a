from __future__ import annotations

import json
import shutil
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from storepos.repositories.document_store import Versioned


class SqliteDocumentStore:
    def __init__(self, db_path: Path | str, timeout: float = 10.0):
        self.db_path = str(db_path)
        self.timeout = timeout

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_documents),
                (2, self._migration_v2_updated_at),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_documents(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                key TEXT NOT NULL,
                body TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1 CHECK(version >= 1),
                PRIMARY KEY (collection, key)
            )
            """
        )

    def _migration_v2_updated_at(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "documents", "updated_at", "TEXT")
        cur.execute("UPDATE documents SET updated_at = datetime('now') WHERE updated_at IS NULL")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column not in cols:
            cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    # ---------- Reads ----------
    def get(self, collection: str, key: str) -> Optional[Versioned]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT key, body, version FROM documents WHERE collection=? AND key=?",
            (collection, str(key)),
        )
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Versioned(key=str(r[0]), data=json.loads(r[1]), version=int(r[2]))

    def list(self, collection: str) -> list[Versioned]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT key, body, version FROM documents WHERE collection=? ORDER BY rowid",
            (collection,),
        )
        rows = cur.fetchall()
        conn.close()
        return [Versioned(key=str(r[0]), data=json.loads(r[1]), version=int(r[2])) for r in rows]

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Writes ----------
    def new_key(self, collection: str) -> str:
        return f"{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:12]}"

    def insert_if_absent(self, collection: str, key: str, data: dict) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                INSERT INTO documents (collection, key, body, version, updated_at)
                VALUES (?, ?, ?, 1, datetime('now'))
                """,
                (collection, str(key), json.dumps(data, ensure_ascii=False)),
            )
            conn.commit()
            return True
        except sqlite3.IntegrityError:
            conn.rollback()
            return False
        finally:
            conn.close()

    def compare_and_set(self, collection: str, key: str, expected_version: int, data: dict) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE documents
            SET body=?, version=version + 1, updated_at=datetime('now')
            WHERE collection=? AND key=? AND version=?
            """,
            (json.dumps(data, ensure_ascii=False), collection, str(key), int(expected_version)),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def delete_if_version(self, collection: str, key: str, expected_version: int) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "DELETE FROM documents WHERE collection=? AND key=? AND version=?",
            (collection, str(key), int(expected_version)),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def put(self, collection: str, key: str, data: dict) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO documents (collection, key, body, version, updated_at)
            VALUES (?, ?, ?, 1, datetime('now'))
            ON CONFLICT(collection, key) DO UPDATE SET
                body=excluded.body, version=documents.version + 1, updated_at=excluded.updated_at
            """,
            (collection, str(key), json.dumps(data, ensure_ascii=False)),
        )
        conn.commit()
        conn.close()
