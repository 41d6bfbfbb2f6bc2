"""Record sync: resolve a capture's media, then submit it to the backend.

Sub-modules:
- ``records`` - captured-record and outgoing-payload schemas
- ``client``  - httpx client for the sync endpoints
- ``service`` - guard → pipeline → POST orchestration
"""
