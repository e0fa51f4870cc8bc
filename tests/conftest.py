"""Pytest configuration and fixtures."""

import pytest

from settler.routing.quoter import MockRouteQuoter
from tests.helpers import PAYER, FakeChain, make_composer, seed_chain, standard_swap_tx


@pytest.fixture
def chain() -> FakeChain:
    """Chain holding an active merchant and an unpaused protocol."""
    return seed_chain(FakeChain())


@pytest.fixture
def swap_tx() -> str:
    """Swap transaction built for the default payer."""
    return standard_swap_tx(PAYER)


@pytest.fixture
def quoter(swap_tx) -> MockRouteQuoter:
    """Quoter converting 1:2 and returning the default swap transaction."""
    return MockRouteQuoter(rate=(2, 1), swap_transaction=swap_tx)


@pytest.fixture
def composer(chain, quoter):
    """Composer over the fake chain with the default merchant profile."""
    return make_composer(chain, quoter=quoter)
