import os
import tempfile

import pytest

if not os.environ.get("COMPOSE_FRAMEWORK_LOG"):
    os.environ["COMPOSE_FRAMEWORK_LOG"] = os.path.join(tempfile.mkdtemp(), "framework.log")

from framework_tests import common  # noqa: E402


@pytest.fixture
def compose_executor() -> common.FakeExecutor:
    return common.FakeExecutor()


@pytest.fixture
def docker_executor() -> common.FakeExecutor:
    return common.FakeExecutor()
