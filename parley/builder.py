"""Helpers for composing user messages from mixed content.

    message = user_message(
        "Please analyze this image:",
        image_from_file("chart.png"),
        "What trend do you see?",
    )

Strings become text blocks; blocks pass through in order. Images are
base64-encoded as-is (no resizing or re-encoding).
"""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

from parley.models.content import ContentBlock, ImageBlock, Message, TextBlock

SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def text_block(text: str) -> TextBlock:
    return TextBlock(text=text)


def content_blocks(*items: str | ContentBlock) -> list[ContentBlock]:
    """Normalize strings and blocks into an ordered block list."""
    blocks: list[ContentBlock] = []
    for item in items:
        blocks.append(TextBlock(text=item) if isinstance(item, str) else item)
    return blocks


def user_message(*items: str | ContentBlock) -> Message:
    return Message.user(tuple(content_blocks(*items)))


def image_from_bytes(data: bytes, media_type: str) -> ImageBlock:
    if media_type not in SUPPORTED_IMAGE_TYPES:
        raise ValueError(f"Unsupported image type: {media_type}")
    return ImageBlock.from_base64(media_type, base64.b64encode(data).decode("ascii"))


def image_from_file(path: str | Path, media_type: str | None = None) -> ImageBlock:
    """Read an image file; the media type is guessed from the extension."""
    path = Path(path)
    if media_type is None:
        media_type, _ = mimetypes.guess_type(path.name)
        if media_type is None:
            raise ValueError(f"Cannot determine image type for {path}")
    return image_from_bytes(path.read_bytes(), media_type)
