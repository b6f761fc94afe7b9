"""
api/limiter.py -- Shared slowapi rate limiter and the limits KeyDash applies.

One Limiter instance is shared by api/main.py (middleware + 429 handler) and
the auth routes (@limiter.limit). Separate instances would each keep their
own counters and the limits would never trip.

Each OTP submission costs a round-trip to Yubico, so login and signup are
throttled per client address. The data routes get a looser ceiling that a
dashboard polling a few widgets never reaches.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

AUTH_RATE_LIMIT = "10/minute"
DATA_RATE_LIMIT = "120/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
