"""
Test suite for storage backends

Covers CRUD, filtering, the atomic unit of work with rollback, and the
named sequences that back display identifiers.
"""

import pytest
from decimal import Decimal
from datetime import datetime, date, timezone

from olms.storage import (
    InMemoryStorage, SQLiteStorage, create_storage, paginate, to_storable
)


class TestToStorable:

    def test_converts_decimal_dates_and_nested_values(self):
        value = {
            'amount': Decimal('12.50'),
            'when': datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
            'day': date(2024, 1, 15),
            'items': [Decimal('1'), {'inner': Decimal('2.5')}],
        }
        result = to_storable(value)
        assert result == {
            'amount': '12.50',
            'when': '2024-01-15T10:30:00+00:00',
            'day': '2024-01-15',
            'items': ['1', {'inner': '2.5'}],
        }


class StorageContract:
    """Behaviour every backend must share"""

    def make_storage(self):
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()

    def teardown_method(self):
        self.storage.close()

    def test_save_and_load(self):
        self.storage.save("customers", "c1", {'id': 'c1', 'phone': '9000000001'})
        assert self.storage.load("customers", "c1") == {'id': 'c1', 'phone': '9000000001'}
        assert self.storage.load("customers", "missing") is None

    def test_save_replaces_record(self):
        self.storage.save("customers", "c1", {'id': 'c1', 'phone': '1'})
        self.storage.save("customers", "c1", {'id': 'c1', 'phone': '2'})
        assert self.storage.count("customers") == 1
        assert self.storage.load("customers", "c1")['phone'] == '2'

    def test_find_matches_all_filters(self):
        self.storage.save("loans", "l1", {'id': 'l1', 'status': 'ACTIVE', 'customer_id': 'a'})
        self.storage.save("loans", "l2", {'id': 'l2', 'status': 'CLOSED', 'customer_id': 'a'})
        self.storage.save("loans", "l3", {'id': 'l3', 'status': 'ACTIVE', 'customer_id': 'b'})

        found = self.storage.find("loans", {'status': 'ACTIVE', 'customer_id': 'a'})
        assert [r['id'] for r in found] == ['l1']
        assert len(self.storage.find("loans", {})) == 3

    def test_delete_and_exists(self):
        self.storage.save("notes", "n1", {'id': 'n1'})
        assert self.storage.exists("notes", "n1")
        assert self.storage.delete("notes", "n1") is True
        assert self.storage.delete("notes", "n1") is False
        assert not self.storage.exists("notes", "n1")

    def test_atomic_commits(self):
        with self.storage.atomic():
            self.storage.save("loans", "l1", {'id': 'l1'})
            self.storage.save("ornaments", "o1", {'id': 'o1'})
        assert self.storage.exists("loans", "l1")
        assert self.storage.exists("ornaments", "o1")

    def test_atomic_rolls_back_every_write(self):
        self.storage.save("ornaments", "o1", {'id': 'o1', 'status': 'AVAILABLE'})

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("loans", "l1", {'id': 'l1'})
                self.storage.save("ornaments", "o1", {'id': 'o1', 'status': 'PLEDGED'})
                raise RuntimeError("late failure")

        assert not self.storage.exists("loans", "l1")
        assert self.storage.load("ornaments", "o1")['status'] == 'AVAILABLE'

    def test_nested_atomic_joins_outer_unit(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                with self.storage.atomic():
                    self.storage.save("loans", "l1", {'id': 'l1'})
                raise RuntimeError("outer failure")
        assert not self.storage.exists("loans", "l1")

    def test_next_sequence_is_monotonic(self):
        assert self.storage.next_sequence("loan") == 1
        assert self.storage.next_sequence("loan") == 2
        assert self.storage.next_sequence("payment") == 1

    def test_next_sequence_respects_start(self):
        assert self.storage.next_sequence("customer", start=5) == 6
        assert self.storage.next_sequence("customer", start=2) == 7

    def test_clear_table(self):
        self.storage.save("rates", "r1", {'id': 'r1'})
        self.storage.clear_table("rates")
        assert self.storage.count("rates") == 0


class TestInMemoryStorage(StorageContract):

    def make_storage(self):
        return InMemoryStorage()

    def test_loaded_records_are_copies(self):
        self.storage.save("customers", "c1", {'id': 'c1', 'tags': ['a']})
        loaded = self.storage.load("customers", "c1")
        loaded['tags'].append('b')
        assert self.storage.load("customers", "c1")['tags'] == ['a']


class TestSQLiteStorage(StorageContract):

    def make_storage(self):
        return SQLiteStorage(":memory:")


class TestSQLiteFile:

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "olms.db"
        storage = SQLiteStorage(path)
        storage.save("customers", "c1", {'id': 'c1', 'phone': '9000000001'})
        storage.next_sequence("customer")
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("customers", "c1")['phone'] == '9000000001'
        assert reopened.next_sequence("customer") == 2
        reopened.close()


class TestCreateStorage:

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_urls(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'test.db'}")
        assert isinstance(storage, SQLiteStorage)
        storage.close()
        assert isinstance(create_storage("sqlite://"), SQLiteStorage)

    def test_unknown_url(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/olms")


class TestPaginate:

    def test_slices_and_counts(self):
        items, total = paginate(list(range(45)), page=3, limit=20)
        assert items == list(range(40, 45))
        assert total == 45

    def test_page_past_end_is_empty(self):
        items, total = paginate([1, 2, 3], page=5, limit=2)
        assert items == []
        assert total == 3
