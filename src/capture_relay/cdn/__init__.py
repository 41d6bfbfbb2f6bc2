"""CDN upload side of the relay.

Sub-modules:
- ``credential_cache`` - single-flight cache for the time-limited upload token
- ``uploader``         - storage-key derivation and form upload
"""
