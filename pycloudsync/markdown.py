"""Rewrites wiki-style links in markdown into standard markdown links."""

import logging
import re

logger = logging.getLogger(__name__)

ATTACHMENT_PREFIXES = ("attachments/", "assets/", "images/", "img/", "resources/")

# Server types whose renderers need spaces encoded in link targets
URL_ENCODING_SERVERS = ("webdav", "github")

_IMAGE_EMBED = re.compile(r"!\[\[(.*?\.(?:png|jpg|jpeg|gif|svg|webp))\]\]")
_FILE_EMBED = re.compile(r"!\[\[(.*?\.(?:pdf|doc|docx|xls|xlsx|csv|txt))\]\]")
_WIKI_LINK = re.compile(r"\[\[(.*?)\]\]")
_PASTED_IMAGE = re.compile(r"Pasted image \d+\.\w+", re.IGNORECASE)


def _encode(path: str, server_type: str) -> str:
    if server_type in URL_ENCODING_SERVERS:
        return path.replace(" ", "%20")
    return path


def _prefixed(base_path: str, path: str) -> str:
    return f"{base_path}/{path}" if base_path else path


def _image_target(image_path: str, base_path: str, server_type: str) -> str:
    normalized = image_path.replace("\\", "/")
    image_name = normalized.split("/")[-1] or normalized

    if _PASTED_IMAGE.search(image_name):
        # Pasted images are referenced by file name only
        clean_name = image_name.lstrip("/")
        return _prefixed(base_path, _encode(clean_name, server_type))

    prefix_used = next(
        (p for p in ATTACHMENT_PREFIXES if normalized.startswith(p)), None
    )
    base_is_attachment_dir = bool(base_path) and any(
        base_path.endswith(p[:-1]) for p in ATTACHMENT_PREFIXES
    )
    if prefix_used and base_is_attachment_dir:
        normalized = normalized[len(prefix_used) :]
    return _prefixed(base_path, _encode(normalized, server_type))


def process_markdown_content(
    content: str, base_path: str = "", server_type: str = "default"
) -> str:
    """Convert wiki-style embeds and links into standard markdown.

    - ``![[image.png]]`` becomes ``![](image.png)``
    - ``![[report.pdf]]`` becomes ``[report.pdf](report.pdf)``
    - ``[[note|alias]]`` becomes ``[alias](note.md)``

    Args:
        content: Markdown text
        base_path: Optional prefix for every link target
        server_type: Backend type; ``webdav`` and ``github`` get spaces
            encoded as ``%20``

    Returns:
        The rewritten markdown text

    Examples:
        >>> process_markdown_content("see [[My Note]]", server_type="webdav")
        'see [My Note](My%20Note.md)'
    """
    if not isinstance(content, str):
        logger.error("Markdown processing skipped: content is not text")
        return content

    server_type = (server_type or "default").lower()

    def replace_image(match: "re.Match[str]") -> str:
        target = _image_target(match.group(1), base_path, server_type)
        return f"![]({target})"

    def replace_file(match: "re.Match[str]") -> str:
        normalized = match.group(1).replace("\\", "/")
        file_name = normalized.split("/")[-1] or normalized
        target = _prefixed(base_path, _encode(normalized, server_type))
        return f"[{file_name}]({target})"

    def replace_link(match: "re.Match[str]") -> str:
        parts = match.group(1).split("|")
        path = parts[0].strip()
        alias = parts[1].strip() if len(parts) > 1 else path
        normalized = path.replace("\\", "/")
        full_path = normalized if "." in normalized else f"{normalized}.md"
        target = _prefixed(base_path, _encode(full_path, server_type))
        return f"[{alias}]({target})"

    processed = _IMAGE_EMBED.sub(replace_image, content)
    processed = _FILE_EMBED.sub(replace_file, processed)
    processed = _WIKI_LINK.sub(replace_link, processed)
    return processed
