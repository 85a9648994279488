# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""HTTP application exposing cookie sessions.

``app`` is imported lazily; serve it with ``uvicorn src.server:app``.
"""

from typing import TYPE_CHECKING

__all__ = ["app"]

if TYPE_CHECKING:  # pragma: no cover
    from .app import app as _app


def __getattr__(name: str):
    if name == "app":
        from .app import app as fastapi_app

        return fastapi_app
    raise AttributeError(name)
