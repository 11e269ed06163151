from .pool import DeviceSession, SessionOutcome, drive, run_session, run_sessions

__all__ = [
    "DeviceSession",
    "SessionOutcome",
    "drive",
    "run_session",
    "run_sessions",
]
