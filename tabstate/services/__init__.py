"""
Shared services: security gate, content cache, hook pipeline, resolution and
navigation synchronization. Built once per process and injected into each
component instance.
"""
