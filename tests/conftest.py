import pytest

from eip_picker.provider import Address, ProviderError


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def incr(self, key):
        self.data[key] = int(self.data.get(key) or 0) + 1
        return self.data[key]


class FakeProvider:
    """Hands out scripted addresses. None in the script is a failed call,
    and running off the end of the script fails too.
    """

    def __init__(self, ips, release_fails=False):
        self._ips = list(ips)
        self._next = 0
        self.release_fails = release_fails
        self.allocate_calls = 0
        self.released = []

    def allocate(self):
        self.allocate_calls += 1
        if self._next >= len(self._ips):
            raise ProviderError("AddressLimitExceeded")
        ip = self._ips[self._next]
        self._next += 1
        if ip is None:
            raise ProviderError("InternalError")
        return Address(ip, f"eipalloc-{self.allocate_calls}")

    def release(self, address):
        self.released.append(address)
        if self.release_fails:
            raise ProviderError("InvalidAllocationID.NotFound")

    def describe(self):
        return []


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_provider():
    def _factory(ips, **kwargs):
        return FakeProvider(ips, **kwargs)

    return _factory
