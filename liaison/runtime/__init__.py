"""Process-local runtime: clock, timers, locks, rate limiting and fan-out."""
