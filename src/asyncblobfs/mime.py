import codecs
import mimetypes

DEFAULT_MIME_TYPE = "application/octet-stream"

_MAGIC_NUMBERS: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
]


def _sniff(content: bytes) -> str:
    for magic, mime_type in _MAGIC_NUMBERS:
        if content.startswith(magic):
            return mime_type
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    try:
        # A multi-byte character may be cut at the sample boundary.
        codecs.getincrementaldecoder("utf-8")().decode(content[:1024], final=False)
    except UnicodeDecodeError:
        return DEFAULT_MIME_TYPE
    return "text/plain"


class ExtensionMimeTypeDetector:
    """Guesses content type from the file extension, then from content."""

    def detect(self, path: str, content: bytes | None = None) -> str | None:
        guessed, _ = mimetypes.guess_type(path)
        if guessed:
            return guessed
        if not content:
            return DEFAULT_MIME_TYPE
        return _sniff(content)
