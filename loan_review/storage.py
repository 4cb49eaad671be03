"""
Storage Backend Module

Provides the abstract collection store injected into the loan review core,
with in-memory (testing) and SQLite (persistence) implementations. Each
collection is stored as a single serialized payload and always replaced as
a whole.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union
from datetime import datetime, timezone
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager

from .config import LoanReviewConfig, get_config


class StorageInterface(ABC):
    """Abstract interface for collection storage backends"""
    
    @abstractmethod
    def read(self, collection: str) -> Optional[str]:
        """Read the serialized payload of a collection, None if absent"""
        pass
    
    @abstractmethod
    def write(self, collection: str, payload: str) -> None:
        """Replace the serialized payload of a collection"""
        pass
    
    @abstractmethod
    def remove(self, collection: str) -> bool:
        """Delete a collection"""
        pass
    
    @abstractmethod
    def collections(self) -> List[str]:
        """Names of all stored collections"""
        pass
    
    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass
    
    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass
    
    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass
    
    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass
    
    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""
    
    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()
    
    def read(self, collection: str) -> Optional[str]:
        with self._lock:
            return self._data.get(collection)
    
    def write(self, collection: str, payload: str) -> None:
        with self._lock:
            self._data[collection] = payload
    
    def remove(self, collection: str) -> bool:
        with self._lock:
            if collection in self._data:
                del self._data[collection]
                return True
            return False
    
    def collections(self) -> List[str]:
        with self._lock:
            return sorted(self._data)
    
    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""
    
    table = "collections"
    
    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()
        
        self._ensure_table()
    
    def _ensure_table(self) -> None:
        """Ensure the collections table exists"""
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    name TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()
    
    def read(self, collection: str) -> Optional[str]:
        with self._lock:
            cursor = self._connection.execute(f"""
                SELECT payload FROM {self.table} WHERE name = ?
            """, (collection,))
            row = cursor.fetchone()
            if row:
                return row['payload']
            return None
    
    def write(self, collection: str, payload: str) -> None:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {self.table} (name, payload, updated_at)
                VALUES (?, ?, ?)
            """, (collection, payload, now))
            
            # Only commit if not in transaction
            if not self._in_transaction:
                self._connection.commit()
    
    def remove(self, collection: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(f"""
                DELETE FROM {self.table} WHERE name = ?
            """, (collection,))
            
            if not self._in_transaction:
                self._connection.commit()
            return cursor.rowcount > 0
    
    def collections(self) -> List[str]:
        with self._lock:
            cursor = self._connection.execute(f"""
                SELECT name FROM {self.table} ORDER BY name
            """)
            return [row['name'] for row in cursor.fetchall()]
    
    def begin_transaction(self) -> None:
        with self._lock:
            if not self._in_transaction:
                # isolation_level='DEFERRED' opens the transaction on first write
                self._in_transaction = True
    
    def commit(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False
    
    def rollback(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False
    
    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(config: Optional[LoanReviewConfig] = None) -> StorageInterface:
    """Build the persistent store described by the configuration"""
    if config is None:
        config = get_config()
    return SQLiteStorage(config.database_path)
