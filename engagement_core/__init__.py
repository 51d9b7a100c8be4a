"""
Engagement Core
Derived counters, notification fan-out and reconciliation for a
short-form cooking video platform
"""

__version__ = "0.1.0"
