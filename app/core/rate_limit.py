from __future__ import annotations

import asyncio
import json
import time
from collections import deque
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request


APPLIED_RATE_LIMITS: set[str] = set()


class SlidingWindowRateLimiter:
    def __init__(self) -> None:
        self._entries: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def allow(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        async with self._lock:
            bucket = self._entries.setdefault(key, deque())
            while bucket and bucket[0] <= now - window_seconds:
                bucket.popleft()
            if len(bucket) >= limit:
                return False, max(int(window_seconds - (now - bucket[0])) + 1, 1)
            bucket.append(now)
            return True, 0

    async def reset(self) -> None:
        async with self._lock:
            self._entries.clear()


_rate_limiter = SlidingWindowRateLimiter()


async def reset_rate_limiter_state() -> None:
    await _rate_limiter.reset()


async def _json_key_parts(request: Request, fields: tuple[str, ...]) -> list[str]:
    if not fields:
        return []
    if "application/json" not in (request.headers.get("content-type") or "").lower():
        return []
    try:
        payload = json.loads((await request.body()) or b"{}")
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, dict):
        return []
    return [
        f"{field}={str(payload[field]).strip().lower()}"
        for field in fields
        if payload.get(field) is not None
    ]


def rate_limit_dependency(
    *,
    route_key: str,
    limit: int,
    window_seconds: int,
    json_fields: tuple[str, ...] = (),
):
    """Per-client sliding window limit, optionally keyed on body fields such as the email."""
    APPLIED_RATE_LIMITS.add(route_key)

    async def dependency(
        request: Request,
        x_forwarded_for: Annotated[str | None, Header(alias="X-Forwarded-For")] = None,
    ) -> None:
        forwarded = (x_forwarded_for or "").split(",")[0].strip()
        client_key = forwarded or (request.client.host if request.client else "") or "unknown"
        key = ":".join([route_key, client_key, *await _json_key_parts(request, json_fields)])
        allowed, retry_after = await _rate_limiter.allow(key, limit=limit, window_seconds=window_seconds)
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

    return Depends(dependency)
