"""
Fleet Replay - telemetry event replay for fleet tracking

Replays a recorded log of vehicle telemetry against tracked trips:
- Sorted event log with a monotonic cursor
- Per-event trip state transitions (progress, speed, fuel, alerts)
- Virtual clock playback with pause/resume and speed control
- Checkpoints so a session resumes exactly where it left off
"""

__version__ = "0.1.0"
