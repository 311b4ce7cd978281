from alert_intelligence.coordinators.scheduler import AlertScheduler, CycleHandle

__all__ = ["AlertScheduler", "CycleHandle"]
