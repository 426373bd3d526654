"""Notes provider that reads an Obsidian-style markdown vault."""

import re
from pathlib import Path
from typing import Any, Literal, Protocol

import yaml
from loguru import logger

from pkmrag.domain.note import Note

# (Jump:: [[Target|display]]) and [[Target|display]] -> Target
PROPERTY_WIKILINK_TARGET_PATTERN = re.compile(r"\([A-Za-z]+::\s*\[\[([^\]|]+)(?:\|[^\]]*)?\]\]\)")
WIKILINK_TARGET_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|[^\]]*)?\]\]")
# Same shapes, but capturing the text that should remain visible
PROPERTY_WIKILINK_PATTERN = re.compile(r"\([A-Za-z]+::\s*\[\[(?:[^\]|]*\|)?([^\]]+)\]\]\)")
WIKILINK_PATTERN = re.compile(r"\[\[(?:[^\]|]*\|)?([^\]]+)\]\]")
DATAVIEW_FIELD_PATTERN = re.compile(r"^\s*\w+::\s*", flags=re.MULTILINE)
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")

ContentMode = Literal["section", "full"]


class NotesProvider(Protocol):
    def list_locations(self) -> list[str]:
        """List the locations of every note in the corpus."""
        ...

    def read_note(self, location: str) -> Note | None:
        """Parse the note at a location, or None if it cannot be indexed."""
        ...


class MarkdownVaultProvider:
    """Reads notes with YAML front matter from a folder of markdown files."""

    def __init__(
        self,
        *,
        vault_path: str | Path,
        required_key: str = "UUID",
        modified_key: str = "Modified",
        description_key: str = "Description",
        content_mode: ContentMode = "section",
        section_header_name: str = "Notes",
        section_header_level: int = 2,
        excluded_folders: list[str] | None = None,
        included_folders: list[str] | None = None,
    ):
        self.vault_path = Path(vault_path)
        self.required_key = required_key
        self.modified_key = modified_key
        self.description_key = description_key
        self.content_mode = content_mode
        self.section_header_name = section_header_name
        self.section_header_level = section_header_level
        self.excluded_folders = [f.strip("/") for f in excluded_folders or [] if f.strip("/")]
        self.included_folders = [f.strip("/") for f in included_folders or [] if f.strip("/")]

    def list_locations(self) -> list[str]:
        locations = []
        for file in sorted(self.vault_path.rglob("*.md")):
            location = file.relative_to(self.vault_path).as_posix()
            if file.name.endswith(".excalidraw.md"):
                continue
            if any(_in_folder(location, folder) for folder in self.excluded_folders):
                continue
            if self.included_folders and not any(
                _in_folder(location, folder) for folder in self.included_folders
            ):
                continue
            locations.append(location)
        return locations

    def read_note(self, location: str) -> Note | None:
        """Parse a markdown file into a Note.

        Returns None if the front matter lacks the required key or the file has
        no content to index.
        """
        path = self.vault_path / location
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()

        frontmatter, body = split_frontmatter(text)
        note_id = frontmatter.get(self.required_key)
        if note_id is None or str(note_id).strip() == "":
            logger.debug(f"Skipping {location}: no {self.required_key} in front matter")
            return None

        if self.content_mode == "section":
            raw_content = extract_section(body, self.section_header_name, self.section_header_level)
        else:
            raw_content = body.strip() or None
        if not raw_content:
            logger.debug(f"Skipping {location}: no content")
            return None

        return Note(
            id=str(note_id),
            modified=_as_text(frontmatter.get(self.modified_key)),
            title=path.stem,
            description=_as_text(frontmatter.get(self.description_key)),
            aliases=frozenset(normalize_list(frontmatter.get("aliases"))),
            tags=frozenset(t.removeprefix("#") for t in normalize_list(frontmatter.get("tags"))),
            content=clean_wikilinks(raw_content),
            location=location,
            outgoing_links=frozenset(extract_wikilinks(raw_content)),
        )


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into its YAML front matter and body."""
    if not text.startswith("---"):
        return {}, text
    end = text.find("\n---", 3)
    if end == -1:
        return {}, text

    try:
        data = yaml.safe_load(text[3:end])
    except yaml.YAMLError as e:
        logger.warning(f"Invalid front matter: {e}")
        data = None
    body = text[end + 4 :]
    return (data if isinstance(data, dict) else {}), body.lstrip("\n")


def extract_section(text: str, header_name: str, header_level: int) -> str | None:
    """Get the content under a heading, up to the next heading of the same or higher level.

    Lines inside fenced code blocks are never treated as headings.
    """
    lines = text.split("\n")
    start: int | None = None
    end = len(lines)
    in_fence = False

    for i, line in enumerate(lines):
        if FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_PATTERN.match(line)
        if not match:
            continue
        depth = len(match.group(1))
        if start is not None:
            if depth <= header_level:
                end = i
                break
        elif depth == header_level and match.group(2).strip() == header_name:
            start = i + 1

    if start is None:
        return None
    content = "\n".join(lines[start:end]).strip()
    return content or None


def extract_wikilinks(text: str) -> list[str]:
    """Get the sorted, unique targets of all wikilinks in the text."""
    links = {m.strip() for m in PROPERTY_WIKILINK_TARGET_PATTERN.findall(text)}
    links |= {m.strip() for m in WIKILINK_TARGET_PATTERN.findall(text)}
    return sorted(link for link in links if link)


def clean_wikilinks(text: str) -> str:
    """Replace wikilinks with their display text and drop dataview field prefixes."""
    cleaned = PROPERTY_WIKILINK_PATTERN.sub(r"\1", text)
    cleaned = WIKILINK_PATTERN.sub(r"\1", cleaned)
    return DATAVIEW_FIELD_PATTERN.sub("", cleaned)


def normalize_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _in_folder(location: str, folder: str) -> bool:
    return location == folder or location.startswith(folder + "/")
