from __future__ import annotations
from fastapi import HTTPException, Request, status
from ..config import get_settings
from ..redis_client import redis

S = get_settings()

# ---- generic token counter (fixed window) ----
async def _hit(key: str, window_sec: int, limit: int) -> None:
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, window_sec)
    if count > limit:
        ttl = await redis.ttl(key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limit exceeded",
            headers={"Retry-After": str(max(ttl, 1)) if ttl and ttl > 0 else "10"},
        )

def _client_ip(req: Request) -> str:
    # prefer X-Forwarded-For (first hop), fallback to uvicorn client
    h = req.headers.get("x-forwarded-for")
    if h:
        return h.split(",")[0].strip()
    return req.client.host if req.client else "unknown"

# ---- public helpers ----
async def limit_activation_request(req: Request) -> None:
    ip = _client_ip(req)
    await _hit(f"rl:email:activation:req:ip:{ip}", window_sec=10, limit=S.RL_ACTIVATION_REQ_PER_IP_10S)

async def limit_activation_verify(req: Request) -> None:
    ip = _client_ip(req)
    await _hit(f"rl:email:activation:verify:ip:{ip}", window_sec=10, limit=S.RL_ACTIVATION_VERIFY_PER_IP_10S)
