#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import Iterator

import pytest

from cowork.models import Actor, UserRole
from cowork.notifications import InboxNotifier
from cowork.simulation.execution_context import ExecutionContext, new_context
from cowork.store import ReservationStore
from cowork.workflow import ApprovalWorkflow


@pytest.fixture(scope="function", autouse=True)
def execution_context() -> Iterator[ExecutionContext]:
    """Autouse fixture which will setup and teardown execution
    context before and after each test function

    Returns:

    """
    # Set test context
    test_context = ExecutionContext()
    with new_context(test_context):
        yield test_context


@pytest.fixture
def store(execution_context: ExecutionContext) -> ReservationStore:
    return ReservationStore()


@pytest.fixture
def notifier(store: ReservationStore) -> InboxNotifier:
    return InboxNotifier(store)


@pytest.fixture
def workflow(store: ReservationStore, notifier: InboxNotifier) -> ApprovalWorkflow:
    return ApprovalWorkflow(store, notifier=notifier)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=1, role=UserRole.admin)


@pytest.fixture
def member() -> Actor:
    return Actor(user_id=2)
