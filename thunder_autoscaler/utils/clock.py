# Wall-clock helpers for log lines and tick reports

from datetime import datetime, timezone


def now_dt():
    return datetime.now(timezone.utc)

def now_iso():
    return now_dt().isoformat()
