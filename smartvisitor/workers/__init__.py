# =======================================================================================
# smartvisitor/workers/__init__.py - Workers Package
# =======================================================================================
from .housekeeping import HousekeepingWorker

__all__ = ["HousekeepingWorker"]
