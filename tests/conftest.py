"""Shared fixtures: an in-memory stand-in for the CSE HTTP API."""

import pytest

from csebridge.config import Settings
from csebridge.gateway import CSEGateway


LISTING = {
    "reqTradeSummery": [
        {
            "id": 204,
            "symbol": "JKH.N0000",
            "name": "JOHN KEELLS HOLDINGS PLC",
            "price": "1,234.50",
            "change": 5.5,
            "percentageChange": 0.45,
            "turnover": "50,000,000",
            "sharevolume": 40000,
        },
        {
            "id": 305,
            "symbol": "DIAL.N0000",
            "companyName": "DIALOG AXIATA PLC",
            "lastTradedPrice": 12.3,
            "change": -0.1,
            "percentageChange": -0.8,
            "turnover": 1000000,
            "volume": "81,300",
        },
        {
            "id": 77,
            "symbol": "DEAD.N0000",
            "name": "DORMANT PLC",
            "price": 1.0,
            "turnover": 0,
            "sharevolume": 0,
        },
    ]
}


class FakeCSE:
    """
    Records every POST and answers from a dict of endpoint -> response.

    A response that is an exception instance is raised instead; an
    endpoint missing from the dict raises ConnectionError.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.closed = False

    def count(self, endpoint):
        return sum(1 for name, _ in self.calls if name == endpoint)

    async def post(self, endpoint, data=None):
        self.calls.append((endpoint, data))
        if endpoint not in self.responses:
            raise ConnectionError(f"no route to {endpoint}")
        response = self.responses[endpoint]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


@pytest.fixture
def listing():
    return LISTING


@pytest.fixture
def make_gateway():
    """Build a gateway over a FakeCSE; returns (gateway, fake)."""

    def _make(responses=None, **settings):
        fake = FakeCSE(responses)
        gateway = CSEGateway(http=fake, settings=Settings(**settings))
        return gateway, fake

    return _make
