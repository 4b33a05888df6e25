"""
Prometheus metrics for the account proof node
"""

from prometheus_client import Counter, Gauge, Histogram

slots_finalized = Counter('proofnode_slots_finalized_total', 'Confirmed slots that produced an update')
slots_skipped = Counter('proofnode_slots_skipped_total', 'Confirmed slots that touched no monitored account', ['reason'])
slots_failed = Counter('proofnode_slots_failed_total', 'Confirmed slots whose finalization failed', ['reason'])
slots_pruned = Counter('proofnode_slots_pruned_total', 'Slots dropped for falling outside the in-flight window')
finalize_seconds = Histogram('proofnode_finalize_seconds', 'Time spent finalizing a slot')
tracked_slots = Gauge('proofnode_tracked_slots', 'Slots held per accumulator stage', ['stage'])

ingress_queue_depth = Gauge('proofnode_ingress_queue_depth', 'Events waiting for the slot processor')
ingress_dropped = Counter('proofnode_ingress_dropped_total', 'Events dropped by the ingress backpressure policy', ['policy'])
ingress_events = Counter('proofnode_ingress_events_total', 'Events accepted from the host', ['kind'])

updates_published = Counter('proofnode_updates_published_total', 'Updates handed to the broadcaster')
updates_unencodable = Counter('proofnode_updates_unencodable_total', 'Failed attempts to encode a published update for the wire')
subscribers_connected = Gauge('proofnode_subscribers_connected', 'Connected update subscribers')
subscriber_lagged = Counter('proofnode_subscriber_lagged_total', 'Updates skipped by slow subscribers')
