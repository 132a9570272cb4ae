"""
Media type detection from file signatures.

Best-effort heuristic on the first bytes of an upload, used to label the
inline media part sent to Gemini. Never raises: unknown signatures get the
default type for their family.
"""

DEFAULT_VIDEO_MIME = "video/mp4"
DEFAULT_IMAGE_MIME = "image/jpeg"

# First 4 bytes, upper-case hex
_VIDEO_SIGNATURES = (
    ("1A45DFA3", "video/webm"),
    ("00000018", "video/mp4"),
    ("00000020", "video/mp4"),
    ("464C5601", "video/x-flv"),
)

_IMAGE_SIGNATURES = (
    ("FFD8FF", "image/jpeg"),
    ("89504E47", "image/png"),
    ("47494638", "image/gif"),
)


def _signature(data: bytes, length: int = 4) -> str:
    return bytes(data[:length]).hex().upper()


def detect_video_mime(data: bytes) -> str:
    """Classify a video container by its first four bytes."""
    signature = _signature(data)
    for prefix, mime in _VIDEO_SIGNATURES:
        if signature.startswith(prefix):
            return mime
    return DEFAULT_VIDEO_MIME


def detect_image_mime(data: bytes) -> str:
    """Classify an image by its magic bytes (WebP needs the RIFF form type)."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    signature = _signature(data)
    for prefix, mime in _IMAGE_SIGNATURES:
        if signature.startswith(prefix):
            return mime
    return DEFAULT_IMAGE_MIME
