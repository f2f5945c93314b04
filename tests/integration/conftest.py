from __future__ import annotations

import httpx
import pytest_asyncio

import anesguardian.main as main_module
from anesguardian.main import app


@pytest_asyncio.fixture(autouse=True)
async def clean_state() -> None:
    await main_module.rate_limiter.reset()
    yield
    await main_module.rate_limiter.reset()


@pytest_asyncio.fixture
async def client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
