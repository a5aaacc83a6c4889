# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Async Context Management for the request-scoped Identity.
"""

from contextvars import ContextVar

from mcp_authentik.models import Identity

_current_identity: ContextVar[Identity | None] = ContextVar("current_identity", default=None)


def get_current_identity() -> Identity | None:
    """
    Retrieve the identity authenticated for the current request, if any.
    """
    return _current_identity.get()


def set_current_identity(identity: Identity | None) -> None:
    _current_identity.set(identity)


def clear_current_identity() -> None:
    _current_identity.set(None)
