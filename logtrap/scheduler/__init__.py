from logtrap.scheduler.absence import AbsenceScheduler

__all__ = ["AbsenceScheduler"]
