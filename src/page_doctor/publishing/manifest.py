"""File-based publish manifest: which pages and assets a run must publish."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from page_doctor.publishing.models import PageAttributes


class ManifestError(ValueError):
    """Publish manifest is missing or malformed."""


@dataclass(slots=True)
class PageEntry:
    """One page with its pre-rendered web part payload."""

    slug: str
    title: str
    layout: str = "Article"
    comments_disabled: bool = False
    description: str = ""
    template: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    body: Path | None = None

    def attributes(self, *, skip_existing: bool) -> PageAttributes:
        return PageAttributes(
            title=self.title,
            layout=self.layout,
            comments_disabled=self.comments_disabled,
            description=self.description,
            template=self.template,
            skip_existing=skip_existing,
        )


@dataclass(slots=True)
class FileEntry:
    """One local asset uploaded into a library folder."""

    folder: str
    path: Path
    override: bool = False


@dataclass(slots=True)
class PublishManifest:
    pages: list[PageEntry] = field(default_factory=list)
    files: list[FileEntry] = field(default_factory=list)


def read_publish_manifest(path: Path) -> PublishManifest:
    """Load and validate a publish manifest; relative paths resolve against its folder."""

    try:
        raw = json.loads(path.read_text("utf-8"))
    except FileNotFoundError as error:
        raise ManifestError(f"Manifest not found: {path}") from error
    except json.JSONDecodeError as error:
        raise ManifestError(f"Manifest is not valid JSON: {path} ({error})") from error
    if not isinstance(raw, dict):
        raise ManifestError(f"Expected JSON object in {path}")

    base_dir = path.parent
    raw_pages = raw.get("pages", [])
    raw_files = raw.get("files", [])
    if not isinstance(raw_pages, list):
        raise ManifestError("manifest.pages must be an array")
    if not isinstance(raw_files, list):
        raise ManifestError("manifest.files must be an array")

    return PublishManifest(
        pages=[_read_page(item, base_dir) for item in raw_pages],
        files=[_read_file(item, base_dir) for item in raw_files],
    )


def _read_page(item: Any, base_dir: Path) -> PageEntry:
    if not isinstance(item, dict):
        raise ManifestError("manifest page entry must be an object")
    slug = item.get("slug")
    title = item.get("title")
    layout = item.get("layout", "Article")
    comments_disabled = item.get("comments_disabled", False)
    description = item.get("description", "")
    template = item.get("template")
    metadata = item.get("metadata", {})
    body = item.get("body")
    if not isinstance(slug, str) or not slug.strip():
        raise ManifestError("page.slug must be a non-empty string")
    if not isinstance(title, str):
        raise ManifestError(f"page.title must be a string ({slug})")
    if not isinstance(layout, str) or not layout.strip():
        raise ManifestError(f"page.layout must be a non-empty string ({slug})")
    if not isinstance(comments_disabled, bool):
        raise ManifestError(f"page.comments_disabled must be a boolean ({slug})")
    if not isinstance(description, str):
        raise ManifestError(f"page.description must be a string ({slug})")
    if template is not None and not isinstance(template, str):
        raise ManifestError(f"page.template must be a string when provided ({slug})")
    if not isinstance(metadata, dict):
        raise ManifestError(f"page.metadata must be an object ({slug})")
    if body is not None and not isinstance(body, str):
        raise ManifestError(f"page.body must be a path string when provided ({slug})")
    return PageEntry(
        slug=slug.strip().strip("/"),
        title=title,
        layout=layout,
        comments_disabled=comments_disabled,
        description=description,
        template=template or None,
        metadata=metadata,
        body=_resolve(base_dir, body) if body else None,
    )


def _read_file(item: Any, base_dir: Path) -> FileEntry:
    if not isinstance(item, dict):
        raise ManifestError("manifest file entry must be an object")
    folder = item.get("folder")
    file_path = item.get("path")
    override = item.get("override", False)
    if not isinstance(folder, str) or not folder.strip():
        raise ManifestError("file.folder must be a non-empty string")
    if not isinstance(file_path, str) or not file_path.strip():
        raise ManifestError("file.path must be a non-empty string")
    if not isinstance(override, bool):
        raise ManifestError(f"file.override must be a boolean ({file_path})")
    return FileEntry(
        folder=folder.strip().strip("/"),
        path=_resolve(base_dir, file_path),
        override=override,
    )


def _resolve(base_dir: Path, value: str) -> Path:
    candidate = Path(value)
    return candidate if candidate.is_absolute() else base_dir / candidate
