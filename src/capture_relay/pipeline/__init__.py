"""Sync-time media pipeline.

Sub-modules:
- ``batch``     - sequential download → credential → upload driver
- ``tab_guard`` - origin tab reachability check run before the pipeline
"""
