"""
Database operations for SKD Tryout.
Generic Supabase CRUD over the app's collections: packages, questions,
sessions, answers, tag stats, payments, payment settings and user profiles.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from tryout.errors import NotFoundError, RemoteOperationFailure

logger = logging.getLogger(__name__)

# Entity name -> Supabase table
COLLECTIONS = {
    "Payment": "payments",
    "PaymentSetting": "payment_settings",
    "Question": "questions",
    "QuestionPackage": "question_packages",
    "QuestionTagStats": "question_tag_stats",
    "TryoutSession": "tryout_sessions",
    "UserAnswer": "user_answers",
    "User": "users",
}


def parse_order(order: Optional[str]) -> Optional[Tuple[str, bool]]:
    """Turn an order string like "-created_at" into (column, descending)."""
    if not order:
        return None
    if order.startswith("-"):
        return order[1:], True
    return order, False


class EntityStore:
    """CRUD over one collection. Every call is a single remote request."""

    def __init__(self, client: Client, name: str, table: str):
        self.client = client
        self.name = name
        self.table = table

    def _run(self, action: str, query):
        try:
            return query.execute()
        except Exception as e:
            logger.error("Error in %s.%s: %s", self.name, action, e)
            raise RemoteOperationFailure(f"{self.name}.{action} failed: {e}", cause=e) from e

    def _execute(self, action: str, query) -> List[Dict]:
        response = self._run(action, query)
        return response.data if response.data else []

    def _select(self, order: Optional[str], limit: Optional[int], match: Optional[Dict] = None):
        query = self.client.table(self.table).select("*")
        for column, value in (match or {}).items():
            query = query.eq(column, value)
        parsed = parse_order(order)
        if parsed:
            column, desc = parsed
            query = query.order(column, desc=desc)
        if limit:
            query = query.limit(limit)
        return query

    # ============= Reads =============

    def get(self, entity_id: Any) -> Dict:
        rows = self._execute("get", self.client.table(self.table).select("*").eq("id", str(entity_id)).limit(1))
        if not rows:
            raise NotFoundError(self.name, entity_id)
        return rows[0]

    def list(self, order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
        return self._execute("list", self._select(order, limit))

    def filter(self, match: Dict, order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
        """
        Fetch rows whose columns equal every value in `match`.

        Args:
            match: {column: value} equality predicates (ANDed)
            order: column name, "-" prefix for descending
            limit: max rows (None = store default)
        """
        return self._execute("filter", self._select(order, limit, match))

    def count(self, match: Optional[Dict] = None) -> int:
        """Number of matching rows, counted by the server (no row limit applies)."""
        query = self.client.table(self.table).select("id", count="exact")
        for column, value in (match or {}).items():
            query = query.eq(column, value)
        response = self._run("count", query)
        if response.count is None:
            return len(response.data or [])
        return response.count

    # ============= Writes =============

    def create(self, fields: Dict) -> Dict:
        rows = self._execute("create", self.client.table(self.table).insert(fields))
        if not rows:
            raise RemoteOperationFailure(f"{self.name}.create returned no row")
        logger.debug("Created %s %s", self.name, rows[0].get("id"))
        return rows[0]

    def update(self, entity_id: Any, fields: Dict) -> Dict:
        rows = self._execute("update", self.client.table(self.table).update(fields).eq("id", str(entity_id)))
        if not rows:
            raise NotFoundError(self.name, entity_id)
        return rows[0]

    def delete(self, entity_id: Any) -> None:
        self._execute("delete", self.client.table(self.table).delete().eq("id", str(entity_id)))
        logger.info("Deleted %s %s", self.name, entity_id)

    def upsert(self, fields: Dict, on_conflict: str) -> Dict:
        """Insert or update in one request, keyed by the unique columns in `on_conflict`."""
        rows = self._execute("upsert", self.client.table(self.table).upsert(fields, on_conflict=on_conflict))
        if not rows:
            raise RemoteOperationFailure(f"{self.name}.upsert returned no row")
        return rows[0]


class DatabaseClient:
    """
    Wrapper around the Supabase client exposing one EntityStore per collection.

    Sign-in state lives on the client that runs the auth calls, so the app
    passes a per-browser `auth_client` and keeps the shared client for tables.
    """

    def __init__(self, client: Client, auth_client: Optional[Client] = None):
        self.client = client
        self.auth_client = auth_client or client
        self._stores = {name: EntityStore(client, name, table) for name, table in COLLECTIONS.items()}

    def entity(self, name: str) -> EntityStore:
        return self._stores[name]

    @property
    def auth(self):
        return self.auth_client.auth
