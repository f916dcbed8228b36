from courtauction.services.export import RecordExporter

__all__ = ["RecordExporter"]
