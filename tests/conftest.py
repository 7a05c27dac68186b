import pytest

from brickshop.services import Services


def product_row(id, name=None, category="City", **overrides):
    row = {
        "id": id,
        "name": name or f"Set {id}",
        "price": 19.99,
        "elements": 100 + id,
        "minifigures": 2,
        "image_url": f"https://img.example/{id}.png",
        "category": category,
    }
    row.update(overrides)
    return row


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def data(self):
        return [dict(row) for row in self._rows]


class FakeTx:
    def __init__(self, store):
        self.store = store

    def run(self, query, parameters=None, **kwargs):
        return FakeResult(self.store._answer(query, {**(parameters or {}), **kwargs}))


class FakeStore:
    """Stands in for GraphStore: answers statements, in order, from scripted rows.

    A scripted item that is an exception is raised instead of answered.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.transactions = []
        self.closed = False

    def _answer(self, query, params):
        self.calls.append((" ".join(query.split()), params))
        rows = self.responses.pop(0) if self.responses else []
        if isinstance(rows, Exception):
            raise rows
        return rows

    def execute(self, query, parameters=None, timeout=None):
        return FakeResult(self._answer(query, dict(parameters or {}))).data()

    def read(self, work, *args, **kwargs):
        return self._transact("read", work, *args, **kwargs)

    def write(self, work, *args, **kwargs):
        return self._transact("write", work, *args, **kwargs)

    def _transact(self, mode, work, *args, **kwargs):
        try:
            result = work(FakeTx(self), *args, **kwargs)
        except Exception:
            self.transactions.append((mode, "rolled back"))
            raise
        self.transactions.append((mode, "committed"))
        return result

    def ping(self):
        rows = self.execute("RETURN 1 AS ok")
        return bool(rows) and rows[0].get("ok") == 1

    def close(self):
        self.closed = True

    def queries(self):
        return [query for query, _ in self.calls]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def services(store):
    return Services.build(store)
