#  Proactive Engine - HTTP Rate Limiter
#
#  Shared per-client limiter used by app.py and route decorators. This
#  throttles HTTP requests; the per-tenant AI quota lives in services/quota.py.
#
#  Depends on: config.py
#  Used by:    app.py, routes/ceremonies.py

from slowapi import Limiter
from slowapi.util import get_remote_address

from proactive_engine.config import HTTP_RATE_LIMIT, cfg

GENERATE_LIMIT = cfg("server.generate_rate_limit", "10/minute")

limiter = Limiter(key_func=get_remote_address, default_limits=[HTTP_RATE_LIMIT])
