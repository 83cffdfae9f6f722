"""Background task definitions for ARQ workers."""
