from alert_intelligence.persistence.store import AlertStore, InMemoryAlertStore, create_store

__all__ = ["AlertStore", "InMemoryAlertStore", "create_store"]
