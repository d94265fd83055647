"""Client side of notasync: remote store adapter, local stores and sync."""
