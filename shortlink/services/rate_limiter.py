"""Shared rate limiting backed by Redis.

Decisions use GCRA (generic cell rate algorithm). The whole read-compute-write
cycle runs inside one Lua script, so the decision for a key is atomic across
every process sharing the Redis instance and no state is kept locally.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from starlette.requests import Request

from ..redis import RedisClient

logger = logging.getLogger(__name__)

# KEYS[1] = key; ARGV = burst, rate, period (seconds), cost.
# Returns {allowed, remaining, retry_after, reset_after}, durations in seconds.
GCRA_SCRIPT = """
-- TIME before a write needs effects replication on Redis older than 5
if redis.replicate_commands then
  redis.replicate_commands()
end

local key = KEYS[1]
local burst = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local period = tonumber(ARGV[3])
local cost = tonumber(ARGV[4])

local emission_interval = period / rate
local increment = emission_interval * cost
local burst_offset = emission_interval * burst

-- seconds since 2017-01-01 keep the float within double precision
local jan_1_2017 = 1483228800
local now = redis.call("TIME")
now = (now[1] - jan_1_2017) + (now[2] / 1000000)

local tat = redis.call("GET", key)
if not tat then
  tat = now
else
  tat = tonumber(tat)
end
tat = math.max(tat, now)

local new_tat = tat + increment
local allow_at = new_tat - burst_offset
local diff = now - allow_at
local remaining = diff / emission_interval

if remaining < 0 then
  return {0, 0, tostring(diff * -1), tostring(tat - now)}
end

local reset_after = new_tat - now
if reset_after > 0 then
  redis.call("SET", key, tostring(new_tat), "EX", math.ceil(reset_after))
end
return {cost, math.floor(remaining), tostring(-1), tostring(reset_after)}
"""


@dataclass(frozen=True)
class Limit:
    rate: int
    burst: int
    period: timedelta


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: timedelta
    reset_after: timedelta = timedelta(0)


class RateLimiter(Protocol):
    async def allow(self, key: str, limit: Limit) -> RateDecision:
        ...


class RedisRateLimiter:
    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client
        self._script = None

    async def allow(self, key: str, limit: Limit) -> RateDecision:
        client = self.redis_client.get_client()
        if self._script is None:
            self._script = client.register_script(GCRA_SCRIPT)

        allowed, remaining, retry_after, reset_after = await self._script(
            keys=[key],
            args=[limit.burst, limit.rate, limit.period.total_seconds(), 1],
        )
        return RateDecision(
            allowed=int(allowed) > 0,
            remaining=int(remaining),
            retry_after=timedelta(seconds=max(float(retry_after), 0.0)),
            reset_after=timedelta(seconds=float(reset_after)),
        )


def client_ip(request: Request) -> str:
    # Proxy headers first, then the socket peer
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


def rate_limit_key(request: Request) -> str:
    uri = request.url.path
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    host = request.headers.get("host", "")
    return f"rate_limit:{client_ip(request)}:{uri}:{host}:{request.method}"
