import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .attributes import ContainerOptions, UploadOptions
from .azure_blob_client import AzureBlobClient
from .filesystem import DEFAULT_MAX_RESULTS, BlobFilesystemAdapter

ENV_PREFIX = "ASYNCBLOBFS_"


@dataclass(frozen=True)
class AdapterSettings:
    connection_string: str
    container: str
    prefix: str | None = None
    max_results: int = DEFAULT_MAX_RESULTS
    public_access: str | None = None
    cache_control: str | None = None
    content_language: str | None = None

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "AdapterSettings":
        """
        Read ASYNCBLOBFS_* variables, loading a .env file first if present.
        Variables already set in the environment take precedence.
        """
        load_dotenv(dotenv_path)

        def env(name: str) -> str | None:
            return os.environ.get(ENV_PREFIX + name) or None

        connection_string = env("CONNECTION_STRING")
        container = env("CONTAINER")
        if not connection_string or not container:
            raise ValueError(
                f"{ENV_PREFIX}CONNECTION_STRING and {ENV_PREFIX}CONTAINER must be set"
            )
        max_results = env("MAX_RESULTS")
        return cls(
            connection_string=connection_string,
            container=container,
            prefix=env("PREFIX"),
            max_results=int(max_results) if max_results else DEFAULT_MAX_RESULTS,
            public_access=env("PUBLIC_ACCESS"),
            cache_control=env("CACHE_CONTROL"),
            content_language=env("CONTENT_LANGUAGE"),
        )

    def upload_options(self) -> UploadOptions:
        return UploadOptions(
            cache_control=self.cache_control, content_language=self.content_language
        )

    def build_adapter(self) -> BlobFilesystemAdapter:
        return BlobFilesystemAdapter(
            AzureBlobClient.from_connection_string(self.connection_string),
            self.container,
            self.prefix,
            max_results=self.max_results,
            upload_options=self.upload_options(),
            container_options=ContainerOptions(public_access=self.public_access),
        )
