"""Workforce Attendance Sync package.

Feature modules (geofence, sessions, breaks, approvals, sync, projection)
follow the same service/repository split, with a thin Flask controller layer
on top and a realtime event channel fanning state transitions out to clients.
"""
