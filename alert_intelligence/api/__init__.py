from alert_intelligence.api.server import create_app

__all__ = ["create_app"]
