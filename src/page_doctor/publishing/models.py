"""Remote SharePoint objects as returned by the CLI, plus requested page state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MARKDOWN_WEB_PART_ID = "1ef5ed11-ce7b-44be-bc5e-4abd55101d16"


def normalize_key(value: str | None) -> str:
    """Case-insensitive identity of a slug, path or URL."""

    return (value or "").lower()


@dataclass(slots=True)
class PageAttributes:
    """Requested state of one page."""

    title: str
    layout: str = "Article"
    comments_disabled: bool = False
    description: str = ""
    template: str | None = None
    skip_existing: bool = False


@dataclass(slots=True)
class EnsureResult:
    """Outcome of one ensure-page call."""

    existed: bool
    identifier: int | None = None
    created: bool = False
    updated: bool = False
    skipped: bool = False


@dataclass(slots=True)
class RemotePage:
    """Metadata of an existing modern page."""

    title: str | None
    layout_type: str | None
    comments_disabled: bool | None
    description: str | None
    item_id: int | None


@dataclass(slots=True)
class ListItem:
    """One row of the Site Pages library listing."""

    item_id: int | None
    title: str | None
    file_ref: str


@dataclass(slots=True)
class PageTemplate:
    title: str
    url: str


@dataclass(slots=True)
class SiteList:
    list_id: str
    title: str


@dataclass(slots=True)
class RemoteFile:
    server_relative_url: str


@dataclass(slots=True)
class RemoteFolder:
    name: str
    server_relative_url: str
    exists: bool


def parse_remote_page(raw: Any) -> RemotePage:
    """Build a page view from ``page get --metadataOnly`` output."""

    if not isinstance(raw, dict):
        raise TypeError("Page metadata must be a JSON object")
    list_item = raw.get("ListItemAllFields")
    if not isinstance(list_item, dict):
        list_item = {}
    description = raw.get("description")
    if description is None:
        description = list_item.get("Description")
    return RemotePage(
        title=_optional_str(raw.get("title", raw.get("Title"))),
        layout_type=_optional_str(raw.get("layoutType")),
        comments_disabled=_optional_bool(raw.get("commentsDisabled")),
        description=_optional_str(description),
        item_id=_optional_int(list_item.get("Id", list_item.get("ID"))),
    )


def parse_list_items(raw: Any) -> list[ListItem]:
    items: list[ListItem] = []
    for entry in _as_list(raw, "listitem list"):
        file_ref = entry.get("FileRef")
        if not isinstance(file_ref, str) or not file_ref:
            continue
        items.append(
            ListItem(
                item_id=_optional_int(entry.get("ID", entry.get("Id"))),
                title=_optional_str(entry.get("Title")),
                file_ref=file_ref,
            ),
        )
    return items


def parse_templates(raw: Any) -> list[PageTemplate]:
    templates: list[PageTemplate] = []
    for entry in _as_list(raw, "page template list"):
        title = entry.get("Title")
        url = entry.get("Url")
        if isinstance(title, str) and isinstance(url, str):
            templates.append(PageTemplate(title=title, url=url))
    return templates


def parse_site_list(raw: Any) -> SiteList | None:
    if not isinstance(raw, dict):
        return None
    list_id = raw.get("Id")
    if not isinstance(list_id, str) or not list_id:
        return None
    return SiteList(list_id=list_id, title=str(raw.get("Title") or ""))


def parse_files(raw: Any) -> list[RemoteFile]:
    files: list[RemoteFile] = []
    for entry in _as_list(raw, "file list"):
        url = entry.get("ServerRelativeUrl")
        if isinstance(url, str) and url:
            files.append(RemoteFile(server_relative_url=url))
    return files


def parse_folders(raw: Any) -> list[RemoteFolder]:
    folders: list[RemoteFolder] = []
    for entry in _as_list(raw, "folder list"):
        url = entry.get("ServerRelativeUrl")
        if not isinstance(url, str) or not url:
            continue
        folders.append(
            RemoteFolder(
                name=str(entry.get("Name") or ""),
                server_relative_url=url,
                exists=bool(entry.get("Exists", False)),
            ),
        )
    return folders


def extract_item_id(raw: Any) -> int | None:
    """Best-effort list item id from ``page add``/``page get`` style output."""

    if not isinstance(raw, dict):
        return None
    list_item = raw.get("ListItemAllFields")
    if isinstance(list_item, dict):
        return _optional_int(list_item.get("Id", list_item.get("ID")))
    return _optional_int(raw.get("ItemId"))


def _as_list(raw: Any, source: str) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise TypeError(f"Expected JSON array from {source}")
    return [entry for entry in raw if isinstance(entry, dict)]


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
