class BlobNotFoundError(Exception):
    """Raised when a requested blob does not exist."""

    pass


class ContainerNotFoundError(BlobNotFoundError):
    """Raised when the container itself does not exist."""

    pass


class ContainerExistsError(Exception):
    """Raised when creating a container that already exists."""

    pass


class FilesystemOperationFailed(Exception):
    """
    Base class for filesystem-level failures.
    The originating storage error is kept on `cause` and chained as __cause__.
    """

    operation = "operation"

    def __init__(
        self, location: str, cause: BaseException | None = None, message: str = ""
    ) -> None:
        self.location = location
        self.cause = cause
        if not message:
            message = f"Unable to {self.operation} at location: {location}"
            if cause is not None:
                message = f"{message}. {cause}"
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        return isinstance(self.cause, BlobNotFoundError)


class WriteFailed(FilesystemOperationFailed):
    operation = "write file"


class ReadFailed(FilesystemOperationFailed):
    operation = "read file"


class ExistenceCheckFailed(FilesystemOperationFailed):
    operation = "check existence"


class DeleteFailed(FilesystemOperationFailed):
    operation = "delete file"


class DeleteDirectoryFailed(FilesystemOperationFailed):
    operation = "delete directory"


class ListContentsFailed(FilesystemOperationFailed):
    operation = "list contents"


class CopyFailed(FilesystemOperationFailed):
    operation = "copy file"

    def __init__(
        self, source: str, destination: str, cause: BaseException | None = None
    ) -> None:
        self.source = source
        self.destination = destination
        super().__init__(
            source,
            cause,
            f"Unable to copy file from {source} to {destination}"
            + (f". {cause}" if cause is not None else ""),
        )


class MoveFailed(FilesystemOperationFailed):
    operation = "move file"

    def __init__(
        self,
        source: str,
        destination: str,
        cause: BaseException | None = None,
        rollback_error: BaseException | None = None,
    ) -> None:
        self.source = source
        self.destination = destination
        # Set when removing the copied destination also failed.
        self.rollback_error = rollback_error
        message = f"Unable to move file from {source} to {destination}"
        if cause is not None:
            message = f"{message}. {cause}"
        if rollback_error is not None:
            message = (
                f"{message}. Rollback of {destination} also failed: {rollback_error}"
            )
        super().__init__(source, cause, message)


class MetadataRetrievalFailed(FilesystemOperationFailed):
    operation = "retrieve metadata"

    def __init__(
        self,
        location: str,
        reason: str = "metadata",
        cause: BaseException | None = None,
    ) -> None:
        self.reason = reason
        message = f"Unable to retrieve the {reason} for file at location: {location}"
        if cause is not None:
            message = f"{message}. {cause}"
        super().__init__(location, cause, message)


class VisibilityUnsupported(FilesystemOperationFailed):
    operation = "set visibility"

    def __init__(self, location: str) -> None:
        super().__init__(
            location,
            None,
            f"Visibility is not supported by Azure Blob Storage: {location}",
        )
