"""
Rate limiting package for the content layer.

Holds the sliding-window limiter that bounds calls per external endpoint
and queues the overflow by priority.
"""
