"""
Routing pipeline.

Consumes change events from Kafka and forwards routed events to their
destination topics.
"""
