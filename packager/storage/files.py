import os
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def _temp_name(path: Path) -> Path:
    return path.with_name(path.name + f".tmp{os.getpid():X}{random.randint(0, 0x7FFFFFFF):08X}")


@contextmanager
def safe_output_filename(path: Path) -> Iterator[Path]:
    """
    Yield a temporary sibling path and move it over `path` on success.

    The temporary file is removed if the body raises.
    """
    path = Path(path)
    tmpfile = _temp_name(path)
    try:
        yield tmpfile
        os.replace(tmpfile, path)
    except BaseException:
        if tmpfile.exists():
            tmpfile.unlink()
        raise


def write_text_atomic(path: Path, text: str) -> None:
    with safe_output_filename(path) as tmpfile:
        tmpfile.write_text(text, encoding="utf-8")


def format_size(size: float) -> str:
    if size < 1024:
        return f"{int(size)} B"
    size /= 1024
    if size < 1024:
        return f"{size:.1f} KiB"
    size /= 1024
    if size < 1024:
        return f"{size:.1f} MiB"
    size /= 1024
    return f"{size:.1f} GiB"
