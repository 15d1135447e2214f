from typing import List, Dict, Any, Optional, Tuple
import config
from supabase import create_client, Client


class SupabaseClient:
    """
    A client class to interact with the shared Supabase database.
    Handles row lookups, inserts, updates and select-then-write upserts
    for tables that carry no unique constraint on their business key.
    """

    def __init__(self, url: Optional[str] = None, service_role_key: Optional[str] = None):
        """
        Initializes the Supabase client with credentials from config.py.

        Args:
            url (Optional[str]): Project URL. Defaults to NEXT_PUBLIC_SUPABASE_URL.
            service_role_key (Optional[str]): Service role key. Defaults to SUPABASE_SERVICE_ROLE_KEY.

        Raises:
            ValueError: If required config values are missing.
        """
        self.url = url or getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None)
        self.service_role_key = service_role_key or getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None)

        if not self.url:
            raise ValueError("NEXT_PUBLIC_SUPABASE_URL not found in config.py")
        if not self.service_role_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY not found in config.py")

        self.client: Client = create_client(self.url, self.service_role_key)

    def _filtered(self, query, filters: Dict[str, Any]):
        for column, value in filters.items():
            query = query.eq(column, value)
        return query

    def find_one(self, table: str, filters: Dict[str, Any], columns: str = "*") -> Optional[Dict[str, Any]]:
        """
        Return the first row matching all equality filters, or None.

        Args:
            table (str): Table name.
            filters (Dict[str, Any]): Column -> value equality filters.
            columns (str): Columns to select. Defaults to "*".
        """
        query = self._filtered(self.client.table(table).select(columns), filters)
        response = query.limit(1).execute()
        if response.data:
            return response.data[0]
        return None

    def select_rows(
        self,
        table: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return every row matching the filters, oldest first when order_by is given."""
        query = self._filtered(self.client.table(table).select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=False)
        return query.execute().data or []

    def insert_row(self, table: str, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Insert one row (or a list of rows) and return the stored representation."""
        response = self.client.table(table).insert(payload).execute()
        return response.data or []

    def update_rows(self, table: str, payload: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update every row matching the filters and return the updated rows."""
        query = self._filtered(self.client.table(table).update(payload), filters)
        return query.execute().data or []

    def upsert_by_keys(
        self,
        table: str,
        payload: Dict[str, Any],
        match: Dict[str, Any],
        update_by_id: bool = False,
    ) -> Tuple[List[Dict[str, Any]], str]:
        """
        Insert or update a row identified by its business key.

        No unique constraint exists on these tables, so the existing row is
        looked up first and either updated in place or a new row is inserted.

        Args:
            table (str): Table name.
            payload (Dict[str, Any]): Row contents to write.
            match (Dict[str, Any]): Business key columns used for the lookup.
            update_by_id (bool): Update the matched row by its id rather than
                by the business key. Defaults to False.

        Returns:
            Tuple[List[Dict[str, Any]], str]: Stored rows and "inserted" or "updated".
        """
        existing = self.find_one(table, match, columns="id")

        if existing:
            update_filter = {"id": existing["id"]} if update_by_id else match
            return self.update_rows(table, payload, update_filter), "updated"

        return self.insert_row(table, payload), "inserted"
