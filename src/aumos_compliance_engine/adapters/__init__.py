"""Adapters: concrete collaborators of the compliance engine.

Contains:
- state_store.py      - In-memory and SQLAlchemy state stores for audit entries
- events.py           - ComplianceEventBus (in-process event sink)
- retention_store.py  - In-memory retention data source
- scheduler.py        - MaintenanceScheduler for periodic retention sweeps
"""

__all__: list[str] = []
