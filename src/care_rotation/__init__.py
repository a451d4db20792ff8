"""
Caregiver Rotation Scheduler

Generates 48h on / 48h off home-care rotations for caregivers, rebuilds
contiguous work periods from daily shift records, and renders them as
monthly calendars and reports.
"""

__version__ = "1.0.0"
__author__ = "Care Rotation Team"
