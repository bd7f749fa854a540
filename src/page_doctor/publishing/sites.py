"""Site URL helpers and site list lookups."""

from __future__ import annotations

import logging

from page_doctor.execution import ExecutionEngine, parse_arguments
from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.models import SiteList, parse_site_list

logger = logging.getLogger(__name__)

SITE_PAGES_LIST_TITLE = "Site Pages"


def relative_url(web_url: str, path: str) -> str:
    """Server-relative URL of ``path`` inside the site at ``web_url``."""

    site_path = web_url.split("sharepoint.com")[-1]
    if "://" in site_path:
        site_path = site_path.split("://", 1)[1].partition("/")[2]
    site_path = site_path.strip("/")
    if not site_path:
        return f"/{path}"
    return f"/{site_path}/{path}"


def cli_value(value: object) -> str:
    """Double-quote a value for a command string, escaping what the tokenizer would consume."""

    escaped = str(value)
    for char in ("\\", '"', "$", "`"):
        escaped = escaped.replace(char, "\\" + char)
    return f'"{escaped}"'


class SiteLists:
    """Resolves site lists once per run."""

    def __init__(
        self,
        *,
        engine: ExecutionEngine,
        cache: ResourceCache,
        retry: bool = True,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.retry = retry

    def site_pages_list(self, web_url: str) -> SiteList | None:
        return self.cache.cached_listing(
            f"list:{web_url}:{SITE_PAGES_LIST_TITLE}",
            lambda: self._fetch_list(web_url, SITE_PAGES_LIST_TITLE),
        )

    def _fetch_list(self, web_url: str, title: str) -> SiteList | None:
        raw = self.engine.execute_json(
            parse_arguments(
                f"spo list get --webUrl {cli_value(web_url)} --title {cli_value(title)} "
                "--output json",
            ),
            retry=self.retry,
        )
        site_list = parse_site_list(raw)
        logger.debug("Resolved list %r on %s: %s", title, web_url, site_list)
        return site_list
