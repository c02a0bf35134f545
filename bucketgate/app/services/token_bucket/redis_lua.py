"""Redis Lua script for the distributed token bucket.

Redis runs a script as one indivisible unit, so every check against a key
sees and writes the bucket state with no interleaving from other callers.
"""

# KEYS[1]: bucket key (hash with fields tokens, last)
# ARGV[1]: capacity, ARGV[2]: refill rate (tokens/sec), ARGV[3]: now (ms)
# Returns {admitted (0/1), waitMs, tokens, timeToFullSec}
TOKEN_BUCKET_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local nowMs = tonumber(ARGV[3])

    -- Absent bucket starts full
    local tokens = tonumber(redis.call('HGET', key, 'tokens')) or capacity
    local last = tonumber(redis.call('HGET', key, 'last')) or nowMs

    -- Out-of-order timestamps refill nothing
    local elapsed = math.max(0, nowMs - last)
    tokens = math.min(capacity, tokens + (elapsed / 1000.0) * rate)

    local admitted = 0
    local waitMs = 0
    if tokens < 1.0 then
        waitMs = math.ceil((1.0 - tokens) * 1000.0 / rate)
    else
        tokens = tokens - 1.0
        admitted = 1
    end

    local timeToFull = math.ceil((capacity - tokens) / rate)

    redis.call('HSET', key, 'tokens', tokens, 'last', nowMs)
    -- Idle buckets expire after twice their refill horizon
    redis.call('PEXPIRE', key, math.max(1000, timeToFull * 2000))

    return {admitted, waitMs, tokens, timeToFull}
"""
