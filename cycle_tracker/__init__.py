"""
Cycle Tracker - Battery Charge Cycle Accounting

A system tray application that samples battery telemetry, derives per-day cycle
statistics, projects time until the next charge cycle, and backs up its history
to CSV.
"""

__version__ = "1.0.0"
__author__ = "Cycle Tracker Team"
