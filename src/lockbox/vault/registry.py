# Vault - Secret Registry
#
# CRUD plus activate/deactivate over vault_secrets. Every call goes through
# VaultStore.with_conn(), so every call requires an unlocked vault.
#
# Secret content is stored as a plain BLOB; the whole database is already
# encrypted by SQLCipher.

import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..core import EventType, get_audit_logger
from . import file_activator
from .errors import MissingFilePathError, SecretNotFoundError
from .file_activator import activate_file, expand_path, secure_delete
from .store import SecretCategory, VaultStore


@dataclass
class VaultSecret:
    """Secret metadata. Content is only returned by get_content()."""
    id: str
    name: str
    category: str
    file_path: Optional[str]
    notes: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row) -> "VaultSecret":
        return cls(
            id=row[0],
            name=row[1],
            category=row[2],
            file_path=row[3],
            notes=row[4],
            is_active=bool(row[5]),
            created_at=row[6],
            updated_at=row[7],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_SECRET_COLUMNS = "id, name, category, file_path, notes, is_active, created_at, updated_at"


class UpdateBuilder:
    """
    Accumulates ``column = ?`` assignments for one parameterized UPDATE.

    Column names must come from ``allowed``; values of None are skipped.
    """

    def __init__(self, table: str, allowed: Tuple[str, ...]):
        self.table = table
        self.allowed = frozenset(allowed)
        self._sets: List[str] = []
        self._params: List[Any] = []

    def set(self, column: str, value: Any) -> "UpdateBuilder":
        if column not in self.allowed:
            raise ValueError(f"Column {column!r} cannot be updated")
        if value is not None:
            self._sets.append(f"{column} = ?")
            self._params.append(value)
        return self

    def __bool__(self) -> bool:
        return bool(self._sets)

    @property
    def columns(self) -> List[str]:
        return [s.split(" = ", 1)[0] for s in self._sets]

    def build(self, where_column: str, where_value: Any) -> Tuple[str, List[Any]]:
        if where_column not in self.allowed and where_column != "id":
            raise ValueError(f"Column {where_column!r} cannot be used as a key")
        sets = self._sets + ["updated_at = datetime('now')"]
        sql = f"UPDATE {self.table} SET {', '.join(sets)} WHERE {where_column} = ?"
        return sql, self._params + [where_value]


def _to_blob(content: Union[str, bytes]) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


class SecretRegistry:
    """CRUD and file activation for vault secrets."""

    UPDATABLE_COLUMNS = ("name", "category", "content", "file_path", "notes")

    def __init__(self, store: VaultStore):
        self.store = store

    @property
    def audit(self):
        return get_audit_logger()

    # ── Queries ────────────────────────────────────────────────────────

    def list_secrets(self, category: Optional[str] = None) -> List[VaultSecret]:
        """List secrets newest first, optionally filtered by category."""
        if category is not None:
            category = SecretCategory.parse(category).value

        def _list(conn):
            if category:
                rows = conn.execute(
                    f"SELECT {_SECRET_COLUMNS} FROM vault_secrets WHERE category = ? "
                    "ORDER BY created_at DESC, rowid DESC",
                    (category,),
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT {_SECRET_COLUMNS} FROM vault_secrets ORDER BY created_at DESC, rowid DESC"
                ).fetchall()
            return [VaultSecret.from_row(row) for row in rows]

        return self.store.with_conn(_list)

    def get_secret(self, secret_id: str) -> VaultSecret:
        def _get(conn):
            row = conn.execute(
                f"SELECT {_SECRET_COLUMNS} FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")
            return VaultSecret.from_row(row)

        return self.store.with_conn(_get)

    def get_content(self, secret_id: str) -> bytes:
        def _get(conn):
            row = conn.execute(
                "SELECT content FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")
            return bytes(row[0])

        return self.store.with_conn(_get)

    # ── Mutations ──────────────────────────────────────────────────────

    def add_secret(
        self,
        name: str,
        category: str,
        content: Union[str, bytes],
        file_path: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """
        Store a new secret.

        Returns:
            The generated secret id
        """
        category = SecretCategory.parse(category).value
        secret_id = str(uuid.uuid4())
        blob = _to_blob(content)

        def _insert(conn):
            conn.execute(
                "INSERT INTO vault_secrets (id, name, category, content, file_path, notes) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (secret_id, name, category, blob, file_path, notes),
            )

        self.store.with_conn(_insert)
        self.audit.log_vault_event(
            EventType.SECRET_ADDED,
            f"Secret added: {name}",
            details={"secret_id": secret_id, "category": category},
        )
        return secret_id

    def update_secret(
        self,
        secret_id: str,
        *,
        name: Optional[str] = None,
        category: Optional[str] = None,
        content: Optional[Union[str, bytes]] = None,
        file_path: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        """
        Update only the fields that are not None.

        If the secret is active and its content or file_path changes, the
        file is rewritten at the (new) path and any file at the old path is
        securely deleted, so an active row always matches what is on disk.

        Raises:
            SecretNotFoundError: If the secret does not exist
            FileActivationError: If the active file cannot be rewritten
        """
        blob = _to_blob(content) if content is not None else None

        update = UpdateBuilder("vault_secrets", self.UPDATABLE_COLUMNS)
        update.set("name", name)
        update.set("category", SecretCategory.parse(category).value if category is not None else None)
        update.set("content", blob)
        update.set("file_path", file_path)
        update.set("notes", notes)

        if not update:
            self.get_secret(secret_id)
            return

        sql, params = update.build("id", secret_id)

        def _update(conn):
            row = conn.execute(
                "SELECT is_active, file_path, content FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")

            conn.execute(sql, params)

            is_active, old_path, old_content = row
            if not is_active or (blob is None and file_path is None):
                return None

            # New file first: a failed write rolls back and leaves the old file in place
            written = activate_file(file_path or old_path, blob if blob is not None else bytes(old_content))
            if old_path and expand_path(old_path) != written:
                secure_delete(old_path)
            return written

        rewritten = self.store.with_conn(_update)

        details = {"secret_id": secret_id, "fields": update.columns}
        if rewritten:
            details["file_path"] = rewritten
        self.audit.log_vault_event(EventType.SECRET_UPDATED, "Secret updated", details=details)

    def delete_secret(self, secret_id: str):
        """
        Delete a secret. An active secret's file is securely deleted first;
        the row is removed whether or not that succeeds.
        """
        def _delete(conn):
            row = conn.execute(
                "SELECT is_active, file_path FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")

            is_active, file_path = row
            if is_active and file_path:
                secure_delete(file_path)

            conn.execute("DELETE FROM vault_secrets WHERE id = ?", (secret_id,))

        self.store.with_conn(_delete)
        self.audit.log_vault_event(
            EventType.SECRET_DELETED,
            "Secret deleted",
            details={"secret_id": secret_id},
        )

    # ── Activation ─────────────────────────────────────────────────────

    def activate(self, secret_id: str) -> str:
        """
        Write the secret's content to its file_path and mark it active.

        Returns:
            The expanded path that was written

        Raises:
            SecretNotFoundError: If the secret does not exist
            MissingFilePathError: If the secret has no file_path
            FileActivationError: If the file cannot be written
        """
        def _activate(conn):
            row = conn.execute(
                "SELECT content, file_path FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")

            content, file_path = row
            if not file_path:
                raise MissingFilePathError("Secret has no file_path set")

            written = activate_file(file_path, bytes(content))
            conn.execute(
                "UPDATE vault_secrets SET is_active = 1, updated_at = datetime('now') WHERE id = ?",
                (secret_id,),
            )
            return written

        written = self.store.with_conn(_activate)
        self.audit.log_vault_event(
            EventType.SECRET_ACTIVATED,
            "Secret written to disk",
            details={"secret_id": secret_id, "file_path": written},
        )
        return written

    def deactivate(self, secret_id: str):
        """Securely delete the secret's file (if any) and mark it inactive."""
        def _deactivate(conn):
            row = conn.execute(
                "SELECT file_path FROM vault_secrets WHERE id = ?", (secret_id,)
            ).fetchone()
            if row is None:
                raise SecretNotFoundError(f"Secret {secret_id} not found")

            if row[0]:
                secure_delete(row[0])

            conn.execute(
                "UPDATE vault_secrets SET is_active = 0, updated_at = datetime('now') WHERE id = ?",
                (secret_id,),
            )

        self.store.with_conn(_deactivate)
        self.audit.log_vault_event(
            EventType.SECRET_DEACTIVATED,
            "Secret removed from disk",
            details={"secret_id": secret_id},
        )

    def deactivate_all(self) -> int:
        """
        Securely delete every active secret's file and mark all inactive.

        Returns:
            Number of files removed
        """
        def _deactivate_all(conn):
            rows = conn.execute(
                "SELECT id, file_path FROM vault_secrets WHERE is_active = 1 AND file_path IS NOT NULL"
            ).fetchall()
            removed = file_activator.deactivate_all(rows)
            conn.execute(
                "UPDATE vault_secrets SET is_active = 0, updated_at = datetime('now') WHERE is_active = 1"
            )
            return len(rows), removed

        active, removed = self.store.with_conn(_deactivate_all)
        if active:
            self.audit.log_vault_event(
                EventType.SECRET_DEACTIVATED,
                "All active secrets removed from disk",
                details={"active_secrets": active, "files_removed": removed},
            )
        return removed
