from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    # Fixed-width ISO text so SQLite string comparison follows time order
    return utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ")
