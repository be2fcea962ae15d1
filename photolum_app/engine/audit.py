from datetime import datetime
import platform
from typing import List, Optional


def start_audit(sample_id: Optional[str] = None) -> List[str]:
    entries = [f"Session start: {datetime.now().isoformat()}",
               f"Platform: {platform.platform()}"]
    if sample_id:
        entries.append(f"Sample: {sample_id}")
    return entries


def log_step(audit: List[str], msg: str, *args) -> None:
    audit.append(msg % args if args else msg)
