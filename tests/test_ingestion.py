import contextlib

import psycopg2
import pytest

from directory_pipeline.core.errors import StoreError
from directory_pipeline.ingestion import _writes, ensure_city, import_repair_company, log_ingestion


def _listing_record(**overrides):
    record = {
        "name": "Acme Appliance Repair",
        "slug": "acme-appliance-repair-raleigh",
        "address": "12 Main St",
        "city_id": 1,
        "state_id": 1,
        "is_approved": False,
        "external_id": "ChIJ-acme",
    }
    record.update(overrides)
    return record


def test_ensure_city_creates_once(directory):
    state = directory.add_state("North Carolina", "NC")

    first = ensure_city(state["id"], "NC", "Raleigh", 35.78, -78.64)
    second = ensure_city(state["id"], "NC", "raleigh")

    assert first.id == second.id
    assert first.slug == "raleigh"
    assert first.state_code == "nc"
    assert first.lat == 35.78
    assert len(directory.cities) == 1
    assert [entry["action"] for entry in directory.log_entries] == ["city_created"]
    assert directory.log_entries[0]["details"] == "Created city: Raleigh (nc)"
    assert directory.log_entries[0]["source"] == "manual"


def test_ensure_city_same_name_in_other_state_is_distinct(directory):
    oregon = directory.add_state("Oregon", "OR")
    maine = directory.add_state("Maine", "ME")

    west = ensure_city(oregon["id"], "OR", "Portland")
    east = ensure_city(maine["id"], "ME", "Portland")

    assert west.id != east.id
    assert len(directory.cities) == 2


def test_ensure_city_uses_concurrent_winner(directory, monkeypatch):
    state = directory.add_state("Texas", "TX")
    winner = {"id": 77, "slug": "austin", "name": "Austin", "state_id": state["id"], "state_code": "tx"}
    lookups = []

    def racing_select(state_id, name):
        lookups.append(name)
        return winner if len(lookups) > 1 else None

    monkeypatch.setattr(_writes, "select_city", racing_select)
    monkeypatch.setattr(_writes, "insert_city", lambda params: None)

    city = ensure_city(state["id"], "TX", "Austin")

    assert city.id == 77
    assert directory.log_entries == []


def test_ensure_city_raises_when_conflict_has_no_winner(directory, monkeypatch):
    state = directory.add_state("Texas", "TX")
    monkeypatch.setattr(_writes, "select_city", lambda state_id, name: None)
    monkeypatch.setattr(_writes, "select_city_by_slug", lambda state_id, slug: None)
    monkeypatch.setattr(_writes, "insert_city", lambda params: None)

    with pytest.raises(StoreError):
        ensure_city(state["id"], "TX", "Austin")


def test_import_repair_company_inserts_as_given(directory):
    listing_id = import_repair_company(_listing_record())

    stored = directory.listings[listing_id]
    assert stored["name"] == "Acme Appliance Repair"
    assert stored["is_approved"] is False


@pytest.mark.parametrize(
    "record",
    [
        {key: value for key, value in _listing_record().items() if key != "is_approved"},
        _listing_record(rating_source="yelp"),
        _listing_record(name=""),
        _listing_record(slug=None),
    ],
)
def test_import_repair_company_rejects_bad_records(directory, record):
    with pytest.raises(ValueError):
        import_repair_company(record)

    assert directory.listings == {}


def test_import_repair_company_propagates_store_errors(directory):
    import_repair_company(_listing_record())

    with pytest.raises(StoreError):
        import_repair_company(_listing_record(slug="another-slug"))


def test_log_ingestion_swallows_store_failures(monkeypatch, caplog):
    def failing_insert(params):
        raise StoreError("relation \"ingestion_log\" does not exist", code="42P01")

    monkeypatch.setattr(_writes, "insert_log", failing_insert)

    with caplog.at_level("INFO"):
        log_ingestion("outscraper", "import", "Batch b1: imported 3 repair companies")

    messages = " ".join(caplog.messages)
    assert "[Ingestion]" in messages
    assert "Batch b1: imported 3 repair companies" in messages
    assert "Could not persist ingestion log entry" in messages


def test_log_ingestion_skips_table_when_disabled(monkeypatch):
    monkeypatch.setenv("INGESTION_LOG_TABLE_ENABLED", "false")
    calls = []
    monkeypatch.setattr(_writes, "insert_log", calls.append)

    log_ingestion("manual", "city_created", "Created city: Boise (id)")

    assert calls == []


class DummyCursor:
    def __init__(self, connection):
        self.connection = connection

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query, params):
        if self.connection.fail_with is not None:
            raise self.connection.fail_with
        self.connection.executed.append((query, params))

    def fetchone(self):
        return self.connection.returned


class DummyConnection:
    def __init__(self, returned=None, fail_with=None):
        self.returned = returned
        self.fail_with = fail_with
        self.executed = []
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return DummyCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _use_connection(monkeypatch, connection):
    @contextlib.contextmanager
    def fake_get_connection():
        yield connection

    monkeypatch.setattr(_writes, "get_connection", fake_get_connection)


def test_insert_listing_returns_new_id(monkeypatch):
    connection = DummyConnection(returned={"id": 42})
    _use_connection(monkeypatch, connection)

    listing_id = _writes.insert_listing(_listing_record())

    assert listing_id == 42
    assert connection.commits == 1
    assert connection.executed[0][1]["external_id"] == "ChIJ-acme"


def test_insert_city_returns_none_on_conflict(monkeypatch):
    connection = DummyConnection(returned=None)
    _use_connection(monkeypatch, connection)

    params = {"slug": "raleigh", "name": "Raleigh", "state_id": 1, "state_code": "nc", "lat": None, "lng": None}

    assert _writes.insert_city(params) is None
    assert "ON CONFLICT DO NOTHING" in connection.executed[0][0]


def test_insert_rolls_back_on_driver_error(monkeypatch):
    connection = DummyConnection(fail_with=psycopg2.IntegrityError("duplicate key value"))
    _use_connection(monkeypatch, connection)

    with pytest.raises(StoreError):
        _writes.insert_listing(_listing_record())

    assert connection.rollbacks == 1
    assert connection.commits == 0
