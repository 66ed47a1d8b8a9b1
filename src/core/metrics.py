"""
Prometheus metrics for the pathway service
"""

from prometheus_client import Counter, Histogram

transition_count = Counter(
    'pathway_transitions_total',
    'Pathway transition requests',
    ['pathway', 'outcome']
)
transition_duration = Histogram(
    'pathway_transition_duration_seconds',
    'Pathway transition duration',
    ['pathway']
)
enrichment_failures = Counter(
    'pathway_enrichment_failures_total',
    'Best-effort transition steps that failed',
    ['step']
)
follow_ups_booked = Counter(
    'pathway_follow_ups_booked_total',
    'Follow-up appointments booked during or after a transition'
)
view_cache_hits = Counter('pathway_view_cache_hits_total', 'Patient view cache hits')
view_cache_misses = Counter('pathway_view_cache_misses_total', 'Patient view cache misses')
