from logtrap.ingestion.bridge import IngestionBridge

__all__ = ["IngestionBridge"]
