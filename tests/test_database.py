# tests/test_database.py

"""
Chargement des bundles depuis Supabase, client remplacé par un faux
en mémoire qui applique eq() / order() comme PostgREST.
"""

from types import SimpleNamespace
from unittest.mock import patch

from journey.builder import build_customer_journey
from services import database


class FakeQuery:

    def __init__(self, rows: list, calls: list, table: str):
        self.rows = rows
        self.calls = calls
        self.table = table
        self.filters = {}
        self.columns = []

    def select(self, *_):
        return self

    def eq(self, key, value):
        self.filters[key] = value
        return self

    def order(self, column, desc=False):
        self.calls.append((self.table, column))
        self.columns.append(column)
        return self

    def limit(self, _):
        return self

    def execute(self):
        rows = [
            r for r in self.rows
            if all(str(r.get(k)) == str(v) for k, v in self.filters.items())
        ]
        if self.columns:
            rows = sorted(rows, key=lambda r: tuple(str(r.get(c)) for c in self.columns))
        return SimpleNamespace(data=rows)


class FakeClient:

    def __init__(self, tables: dict):
        self.tables = tables
        self.calls = []

    def table(self, name):
        return FakeQuery(self.tables.get(name, []), self.calls, name)


def _tables():
    # Historique valide, stocké dans le désordre
    return {
        "contacts": [{"id": "c_9", "name": "Sam", "created_at": "2025-03-01T09:00:00Z"}],
        "activities": [],
        "meetings": [],
        "deals": [],
        "forms": [],
        "status_changes": [
            {"id": "s_2", "contact_id": "c_9", "from_status": "qualified",
             "to_status": "customer", "changed_at": "2025-03-10T10:00:00Z"},
            {"id": "s_1", "contact_id": "c_9", "from_status": "lead",
             "to_status": "qualified", "changed_at": "2025-03-05T10:00:00Z"},
        ],
    }


class TestLoadContactBundle:

    def test_status_changes_are_ordered_by_query(self):
        client = FakeClient(_tables())

        with patch("services.database.get_client", return_value=client):
            bundle = database.load_contact_bundle("c_9")

        assert ("status_changes", "changed_at") in client.calls
        assert ("status_changes", "id") in client.calls
        assert [s["id"] for s in bundle.status_changes] == ["s_1", "s_2"]

    def test_storage_order_does_not_flag_valid_history(self, as_of):
        client = FakeClient(_tables())

        with patch("services.database.get_client", return_value=client):
            bundle = database.load_contact_bundle("c_9")

        journey = build_customer_journey(bundle, as_of=as_of)
        assert "out_of_order_transitions" not in journey.data_quality_flags
        assert len(journey.journey_metrics.stage_transitions) == 2

    def test_unknown_contact(self):
        with patch("services.database.get_client", return_value=FakeClient(_tables())):
            assert database.load_contact_bundle("nope") is None

    def test_bulk_load_keeps_query_order(self):
        client = FakeClient(_tables())

        with patch("services.database.get_client", return_value=client):
            bundles = database.load_contact_bundles()

        assert len(bundles) == 1
        assert [s["id"] for s in bundles[0].status_changes] == ["s_1", "s_2"]
        assert [t for t, _ in client.calls] == ["status_changes", "status_changes"]
