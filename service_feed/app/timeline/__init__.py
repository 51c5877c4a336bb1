from .service import TimelineService

__all__ = ["TimelineService"]
