"""Machine-readable output for ``--porcelain`` mode.

Every record is one JSON object per line. The ``ty`` field names the record
type and its schema version, so consumers can skip types they don't know.
"""

import enum
import json
import sys
from typing import TextIO, TypedDict


class PorcelainEntityType(str, enum.Enum):
    LogV1 = "log-v1"
    ScanResultV1 = "scanresult-v1"

    def __str__(self) -> str:
        return self.value


class PorcelainEntity(TypedDict):
    ty: PorcelainEntityType


def dumps_record(obj: PorcelainEntity) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


class PorcelainOutput:
    """Writes porcelain records to a text stream, one per line.

    Usable as a context manager, in which case the stream is flushed on exit.
    """

    def __init__(self, out: TextIO | None = None) -> None:
        # resolved late so that redirected stdout is honored
        self.out = sys.stdout if out is None else out

    def __enter__(self) -> "PorcelainOutput":
        return self

    def __exit__(self, *exc: object) -> None:
        self.out.flush()

    def emit(self, obj: PorcelainEntity) -> None:
        self.out.write(dumps_record(obj) + "\n")
