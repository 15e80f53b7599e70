from typing import Sequence


class ProvisionError(Exception):
    """Base class of all user-facing OS image provisioning errors."""

    exit_code: int = 1


class UsageError(ProvisionError):
    """Invalid or inconsistent command-line input; raised before any I/O."""

    exit_code = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self._message = message

    def __str__(self) -> str:
        return self._message

    def __repr__(self) -> str:
        return f"UsageError({self._message!r})"


class CompatibilityError(ProvisionError):
    exit_code = 2


class IncompatibleDeviceTypeError(CompatibilityError):
    def __init__(self, device_type: str, application: str) -> None:
        super().__init__()
        self.device_type = device_type
        self.application = application

    def __str__(self) -> str:
        return f"device type {self.device_type} is incompatible with application {self.application}"

    def __repr__(self) -> str:
        return f"IncompatibleDeviceTypeError({self.device_type!r}, {self.application!r})"


class RetrievalError(ProvisionError):
    exit_code = 3

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self._message = message

    def __str__(self) -> str:
        return self._message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._message!r})"


class ManifestError(RetrievalError):
    """The device type manifest is unknown, unreadable or malformed."""


class VersionRequiredError(RetrievalError):
    def __init__(self, image_path: str) -> None:
        super().__init__(
            f"could not read the OS version from the image '{image_path}'; please specify the OS version manually with the --version option"
        )
        self.image_path = image_path


class FleetAPIError(RetrievalError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WriteError(ProvisionError):
    """Writing into the image failed.

    Writes that completed earlier in the same run are *not* rolled back;
    ``written`` lists their in-image paths, in order."""

    exit_code = 4

    def __init__(
        self,
        image_path: str,
        partition: int,
        path: str,
        reason: str,
        written: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self.image_path = image_path
        self.partition = partition
        self.path = path
        self.reason = reason
        self.written = list(written)

    @property
    def is_partial(self) -> bool:
        return bool(self.written)

    def __str__(self) -> str:
        return f"failed to write '{self.path}' into partition {self.partition} of image '{self.image_path}': {self.reason}"

    def __repr__(self) -> str:
        return f"WriteError({self.image_path!r}, {self.partition!r}, {self.path!r}, {self.reason!r}, {self.written!r})"
