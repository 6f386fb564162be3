"""Ready-made ``tag_frames_with`` callbacks."""

import psutil


def memory_tag() -> dict[str, str]:
    """Tag a top-level frame with the process RSS and system memory use."""
    rss = psutil.Process().memory_info().rss / 1024**3  # GB
    system = psutil.virtual_memory().percent
    return {"rss": f"{rss:.2f}GB", "sys_mem": f"{system:.0f}%"}
