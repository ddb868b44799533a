"""
dosetrack: medication dose tracking, stock projection and multi-channel reminders.
"""

__version__ = "0.1.0"
