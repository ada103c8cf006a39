from access_service.models.record import Record

__all__ = ["Record"]
