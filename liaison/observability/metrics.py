"""Prometheus metrics for Liaison.

Counters and gauges for session transitions, escalation timers, abuse
detection, real-time fan-out and store contention.
"""

from prometheus_client import Counter, Gauge

# Session metrics
SESSION_TRANSITIONS = Counter(
    "liaison_session_transitions_total",
    "Session status transitions",
    labelnames=["from_status", "to_status", "trigger"],
)

# Timer metrics
TIMER_EVENTS = Counter(
    "liaison_timer_events_total",
    "Escalation timer lifecycle events",
    labelnames=["kind", "outcome"],
)

ACTIVE_TIMERS = Gauge(
    "liaison_active_timers",
    "Escalation timers currently scheduled",
    labelnames=["kind"],
)

# Abuse metrics
RATE_LIMITED = Counter(
    "liaison_rate_limited_total",
    "Visitor messages rejected by the rate limiter",
)

SPAM_DETECTED = Counter(
    "liaison_spam_detected_total",
    "Sessions flagged as possible spam",
)

# Broadcast metrics
BROADCAST_EVENTS = Counter(
    "liaison_broadcast_events_total",
    "Real-time events published",
    labelnames=["room_kind", "event_type"],
)

BROADCAST_FAILURES = Counter(
    "liaison_broadcast_failures_total",
    "Real-time deliveries that raised in a subscriber",
    labelnames=["room_kind"],
)

# Store metrics
STORE_LOCK_RETRIES = Counter(
    "liaison_store_lock_retries_total",
    "Session lock acquisitions retried after contention",
)
