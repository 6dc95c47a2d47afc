from .app import ReconTrackerApp

__all__ = ["ReconTrackerApp"]
