class PathPrefixer:
    """
    Maps logical paths to blob names under an optional root prefix.
    prefix_path and strip_prefix are exact inverses of each other.
    """

    def __init__(self, prefix: str | None = None, separator: str = "/") -> None:
        self.separator = separator
        prefix = (prefix or "").strip(separator)
        self.prefix = f"{prefix}{separator}" if prefix else ""

    def prefix_path(self, path: str) -> str:
        return self.prefix + path.lstrip(self.separator)

    def strip_prefix(self, path: str) -> str:
        if self.prefix and path.startswith(self.prefix):
            return path[len(self.prefix) :]
        return path

    def prefix_directory_path(self, path: str) -> str:
        prefixed = self.prefix_path(path).rstrip(self.separator)
        return f"{prefixed}{self.separator}" if prefixed else ""

    def strip_directory_prefix(self, path: str) -> str:
        return self.strip_prefix(path).rstrip(self.separator)


def dirname(path: str, separator: str = "/") -> str:
    """Parent of a logical path; "" for top-level entries."""
    path = path.strip(separator)
    if separator not in path:
        return ""
    return path.rsplit(separator, 1)[0]
