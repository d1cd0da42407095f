# =======================================================================================
# smartvisitor/__init__.py - Package Initialization
# =======================================================================================
"""
SmartVisitor - RFID Tag Assignment Service

Binds physical RFID tags to event guests: an operator opens a pending
assignment on a scanner, the next scan on that scanner completes it, and
every state change is pushed to connected admin dashboards.
"""

__version__ = "1.0.0"
__author__ = "SmartVisitor Team"
