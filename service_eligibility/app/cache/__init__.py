"""
Cache package for the Eligibility Service.

Provides thread-safe in-memory caches in front of the rule and FPL
repositories. FPL tables live until the end of their year; program rules
use a rolling TTL. Both expose explicit invalidation and statistics.
"""
