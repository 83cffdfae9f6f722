"""Background workers module using ARQ (async Redis queue)."""
