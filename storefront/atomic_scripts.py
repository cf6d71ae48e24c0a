"""
Lua scripts for atomic cart mutations in Redis.

Scripts answer with a JSON-encoded object so the result survives the Lua to
Redis reply conversion intact (string-keyed tables would not).
"""
import json
from typing import Any, Dict, Optional

# Add a line or merge into the existing line for the same product.
# An empty available argument means the product's stock is not tracked.
ADD_ITEM_SCRIPT = """
local cart_key = KEYS[1]
local seq_key = KEYS[2]
local product_id = ARGV[1]
local quantity = tonumber(ARGV[2])
local item_json = ARGV[3]
local available = tonumber(ARGV[4])
local max_items = tonumber(ARGV[5])
local ttl = tonumber(ARGV[6])

local existing_item = redis.call('HGET', cart_key, product_id)
local existing_qty = 0
local seq = nil
if existing_item then
    local existing_data = cjson.decode(existing_item)
    existing_qty = tonumber(existing_data['quantity']) or 0
    seq = existing_data['seq']
end

local new_qty = existing_qty + quantity

-- Stock covers what is already in the cart plus the new units
if available and new_qty > available then
    return cjson.encode({err = 'INSUFFICIENT_STOCK', available = available, requested = new_qty})
end

if existing_qty == 0 and redis.call('HLEN', cart_key) >= max_items then
    return cjson.encode({err = 'MAX_ITEMS_EXCEEDED', max = max_items})
end

-- Merged lines keep their original position
if not seq then
    seq = redis.call('INCR', seq_key)
end

local item_data = cjson.decode(item_json)
item_data['quantity'] = new_qty
item_data['seq'] = seq
redis.call('HSET', cart_key, product_id, cjson.encode(item_data))

redis.call('EXPIRE', cart_key, ttl)
redis.call('EXPIRE', seq_key, ttl)

return cjson.encode({ok = true, quantity = new_qty, is_new = (existing_qty == 0)})
"""

# Set an absolute quantity; zero removes the line
UPDATE_QUANTITY_SCRIPT = """
local cart_key = KEYS[1]
local seq_key = KEYS[2]
local product_id = ARGV[1]
local quantity = tonumber(ARGV[2])
local available = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

local existing_item = redis.call('HGET', cart_key, product_id)
if not existing_item then
    return cjson.encode({err = 'PRODUCT_NOT_FOUND'})
end

if quantity < 0 then
    return cjson.encode({err = 'INVALID_QUANTITY', quantity = quantity})
end

if quantity == 0 then
    redis.call('HDEL', cart_key, product_id)
    if redis.call('HLEN', cart_key) > 0 then
        redis.call('EXPIRE', cart_key, ttl)
    else
        redis.call('DEL', cart_key, seq_key)
    end
    return cjson.encode({ok = true, quantity = 0, removed = true})
end

if available and quantity > available then
    return cjson.encode({err = 'INSUFFICIENT_STOCK', available = available, requested = quantity})
end

local item_data = cjson.decode(existing_item)
item_data['quantity'] = quantity
redis.call('HSET', cart_key, product_id, cjson.encode(item_data))
redis.call('EXPIRE', cart_key, ttl)
return cjson.encode({ok = true, quantity = quantity, removed = false})
"""


def decode_result(raw: Any) -> Dict[str, Any]:
    """Parse a script reply; anything that isn't a JSON object becomes an error result"""
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        result = json.loads(raw)
    except (TypeError, ValueError):
        return {"err": "BAD_REPLY", "raw": raw}
    if not isinstance(result, dict):
        return {"err": "BAD_REPLY", "raw": raw}
    return result


def _stock_arg(available: Optional[int]) -> str:
    return "" if available is None else str(available)


class AtomicScripts:
    """Runs the cart scripts through the RedisClient wrapper"""

    def __init__(self, redis_wrapper):
        """
        Initialize with RedisClient wrapper (not raw redis.Redis client)
        so every call goes through the wrapper's retry and error handling
        """
        self.redis_wrapper = redis_wrapper

    def add_item(
        self,
        cart_key: str,
        seq_key: str,
        product_id: str,
        quantity: int,
        item: Dict[str, Any],
        available: Optional[int],
        max_items: int,
        ttl: int
    ) -> Dict[str, Any]:
        """Execute add item script"""
        return decode_result(self.redis_wrapper.eval(
            ADD_ITEM_SCRIPT,
            2,
            cart_key,
            seq_key,
            product_id,
            str(quantity),
            json.dumps(item),
            _stock_arg(available),
            str(max_items),
            str(ttl)
        ))

    def update_quantity(
        self,
        cart_key: str,
        seq_key: str,
        product_id: str,
        quantity: int,
        available: Optional[int],
        ttl: int
    ) -> Dict[str, Any]:
        """Execute update quantity script"""
        return decode_result(self.redis_wrapper.eval(
            UPDATE_QUANTITY_SCRIPT,
            2,
            cart_key,
            seq_key,
            product_id,
            str(quantity),
            _stock_arg(available),
            str(ttl)
        ))
