import pathlib


class NonNullStr(str):
    """Str class without None values"""

    def __new__(cls, s: str | None):
        if s is None:
            raise ValueError(
                f"Value for {cls} was None. Did you specify your env vars?"
            )
        return str.__new__(cls, s)


class StoragePath(NonNullStr):
    """Directory where data files are stored"""

    def to_path(self) -> pathlib.Path:
        return pathlib.Path(self).expanduser()
