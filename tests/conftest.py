import os
import sys

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from canaryledger import ManualClock  # noqa: E402
from canaryledger.config import invalidate_config_cache  # noqa: E402
from canaryledger.logging_config import request_id_var  # noqa: E402

from support import T0, make_system  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate():
    token = request_id_var.set("")
    invalidate_config_cache()
    yield
    request_id_var.reset(token)


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def system(clock):
    return make_system(clock)
