import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generator, Optional


@contextmanager
def atomic_write(
    path: Path, copy_from: Optional[Path] = None
) -> Generator[BinaryIO, None, None]:
    """Yields a temporary file next to path. When the block exits without an
    exception, the temp file is flushed, synced to disk and renamed over path.
    Otherwise it's deleted and path is left alone.

    If copy_from is passed in, the temp file starts as a copy of it."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "r+b") as f:
            if path.exists():
                # Keep the permissions of the file we are replacing
                shutil.copymode(path, tmp_path)
            if copy_from is not None:
                with open(copy_from, "rb") as src:
                    shutil.copyfileobj(src, f)
                f.seek(0)
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
