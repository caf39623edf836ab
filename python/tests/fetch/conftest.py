# -*- encoding: utf-8 -*-
import pytest

from fakes import FakeHost


@pytest.fixture
def host():
    fake = FakeHost()
    yield fake
    fake.stop()
