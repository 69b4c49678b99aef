import pytest

from escrow.tests.factory import STUDENT, build_marketplace, fund, open_course


@pytest.fixture
def market():
    return build_marketplace()


@pytest.fixture
def course(market):
    fund(market, STUDENT)
    return open_course(market)


@pytest.fixture
def purchased(market, course):
    market.service.purchase(STUDENT, course.id)
    return course
