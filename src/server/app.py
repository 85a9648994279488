# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.server.session.cookies import CookieJarMiddleware
from src.server.session.dependencies import initialise_session_manager
from src.server.session.middleware import SessionMiddleware
from src.server.session.router import router as session_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    manager = initialise_session_manager()
    await manager.ensure_schema()
    logger.info("Session store ready at %s", manager.store.db_path)
    try:
        yield
    finally:
        await manager.close()


app = FastAPI(
    title="Session API",
    description="Cookie sessions persisted in SQLite",
    version="0.1.0",
    lifespan=lifespan,
)

# Middlewares added later wrap earlier ones; the cookie jar must be outermost.
app.add_middleware(SessionMiddleware)
app.add_middleware(CookieJarMiddleware)

app.include_router(session_router)
