# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity


import anyio
import pytest

from mcp_authentik.async_context import clear_current_identity, get_current_identity, set_current_identity
from mcp_authentik.models import Identity


def test_default_is_none() -> None:
    clear_current_identity()
    assert get_current_identity() is None


def test_set_and_clear() -> None:
    identity = Identity(id="1", username="alice")
    set_current_identity(identity)
    assert get_current_identity() is identity

    clear_current_identity()
    assert get_current_identity() is None


@pytest.mark.asyncio
async def test_tasks_do_not_share_identity() -> None:
    """
    Each task sees only the identity it set itself.
    """
    clear_current_identity()
    seen: dict[str, str | None] = {}

    async def worker(name: str) -> None:
        set_current_identity(Identity(id=name, username=name))
        await anyio.sleep(0)
        current = get_current_identity()
        seen[name] = current.id if current else None

    async with anyio.create_task_group() as tg:
        tg.start_soon(worker, "a")
        tg.start_soon(worker, "b")

    assert seen == {"a": "a", "b": "b"}
    assert get_current_identity() is None
