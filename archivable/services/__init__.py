"""
Domain services.

- services.archive: registration, synchronization, triggers, bulk and
  query-level archiving, cross-store resolution.
"""
