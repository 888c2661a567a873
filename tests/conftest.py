import pytest

from expense_flow.repositories import InMemoryRecordStore

from fakes import make_sqlite_store


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        return InMemoryRecordStore()
    return make_sqlite_store()
