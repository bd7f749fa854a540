from __future__ import annotations

import logging
from typing import Any

import allure
import pytest
from conftest import WEB_URL, FakeRunner, fail, ok

from page_doctor.execution import CommandExecutionError
from page_doctor.publishing import PageAttributes
from page_doctor.publishing.models import MARKDOWN_WEB_PART_ID, RemotePage
from page_doctor.publishing.pages import find_markdown_control, is_checked_out, page_changes

pytestmark = [
    allure.epic("Publishing"),
    allure.feature("Page Orchestration"),
]

NOT_FOUND = fail("Error: File Not Found.")


def _page_json(
    title: str,
    *,
    layout: str = "Article",
    comments_disabled: bool = False,
    description: str | None = None,
    item_id: int = 7,
) -> dict[str, Any]:
    return {
        "title": title,
        "layoutType": layout,
        "commentsDisabled": comments_disabled,
        "description": description,
        "ListItemAllFields": {"Id": item_id},
    }


def _with_listing(fake_runner: FakeRunner, *file_refs: str) -> None:
    fake_runner.on("spo list get", ok({"Id": "list-1", "Title": "Site Pages"}))
    fake_runner.on(
        "spo listitem list",
        ok([{"ID": index, "FileRef": ref} for index, ref in enumerate(file_refs, start=1)]),
    )


def _index(fake_runner: FakeRunner, fragment: str) -> int:
    return next(i for i, call in enumerate(fake_runner.calls) if fragment in call)


def test_missing_page_is_created_once_then_left_unchanged(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND, ok(_page_json("Intro")))
    fake_runner.on("spo page add", ok({"ListItemAllFields": {"Id": 7}}))
    orchestrator = make_session().orchestrator
    attributes = PageAttributes(title="Intro")

    first = orchestrator.ensure_page(WEB_URL, "intro.aspx", attributes)
    second = orchestrator.ensure_page(WEB_URL, "intro.aspx", attributes)

    assert (first.existed, first.created, first.identifier) == (False, True, 7)
    assert (second.existed, second.created, second.updated) == (True, False, False)
    created = fake_runner.commands("spo page add")
    assert len(created) == 1
    assert "--title Intro --layoutType Article --commentsEnabled --output json" in created[0]
    assert "--description" not in created[0]
    assert fake_runner.commands("spo page set") == []
    assert orchestrator.cache.processed_id("INTRO.aspx") == 7


def test_new_page_passes_requested_description(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND)
    orchestrator = make_session().orchestrator

    orchestrator.ensure_page(
        WEB_URL,
        "intro.aspx",
        PageAttributes(title="Intro", comments_disabled=True, description="What is new"),
    )

    [created] = fake_runner.commands("spo page add")
    assert '--description "What is new"' in created
    assert "--commentsEnabled" not in created


def test_existing_page_sets_only_changed_fields(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", ok(_page_json("Old Title", description="Same")))
    orchestrator = make_session().orchestrator

    result = orchestrator.ensure_page(
        WEB_URL,
        "intro.aspx",
        PageAttributes(title="New Title", description="Same"),
    )

    assert result.existed and result.updated
    [update] = fake_runner.commands("spo page set")
    assert update.endswith('--name intro.aspx --title "New Title"')
    assert fake_runner.commands("spo page add") == []


def test_unrequested_description_is_left_alone(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", ok(_page_json("Intro", description="Remote text")))
    orchestrator = make_session().orchestrator

    result = orchestrator.ensure_page(WEB_URL, "intro.aspx", PageAttributes(title="Intro"))

    assert result.existed and not result.updated
    assert fake_runner.commands("spo page set") == []


def test_skip_existing_page_uses_listing_and_is_idempotent(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    _with_listing(fake_runner, "/sites/docs/SitePages/Intro.aspx")
    orchestrator = make_session().orchestrator
    attributes = PageAttributes(title="Intro", skip_existing=True)

    first = orchestrator.ensure_page(WEB_URL, "intro.aspx", attributes)
    calls_after_first = len(fake_runner.calls)
    second = orchestrator.ensure_page(WEB_URL, "intro.aspx", attributes)

    assert first.skipped and first.identifier == 1
    assert second.skipped and second.identifier == 1
    assert calls_after_first == 2
    assert len(fake_runner.calls) == calls_after_first
    assert fake_runner.commands("spo page get") == []


def test_processed_page_short_circuits_only_when_skipping_existing(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("--metadataOnly", ok(_page_json("Intro")))
    orchestrator = make_session().orchestrator

    orchestrator.ensure_page(WEB_URL, "intro.aspx", PageAttributes(title="Intro"))
    again = orchestrator.ensure_page(WEB_URL, "intro.aspx", PageAttributes(title="Intro"))
    skipped = orchestrator.ensure_page(
        WEB_URL,
        "Intro.aspx",
        PageAttributes(title="Intro", skip_existing=True),
    )

    assert not again.skipped
    assert skipped.skipped and skipped.identifier == 7
    assert len(fake_runner.commands("--metadataOnly")) == 2
    assert fake_runner.commands("spo listitem list") == []


def test_template_copy_creates_folders_and_reenters_ensure(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND, ok(_page_json("Launch", item_id=11)))
    fake_runner.on("spo folder get", fail("Error: Folder does not exist"))
    fake_runner.on(
        "spo page template list",
        ok([{"Title": "Announcement", "Url": "SitePages/Templates/Announcement.aspx"}]),
    )
    orchestrator = make_session().orchestrator

    result = orchestrator.ensure_page(
        WEB_URL,
        "news/launch.aspx",
        PageAttributes(title="Launch", template="Announcement"),
    )

    assert result.created and result.existed
    assert result.identifier == 11
    assert fake_runner.commands("spo page add") == []
    [folder_add] = fake_runner.commands("spo folder add")
    assert folder_add.endswith("--parentFolderUrl sitepages --name news")
    [copy] = fake_runner.commands("spo page copy")
    assert copy.endswith("--sourceName templates/announcement.aspx --targetUrl news/launch.aspx")
    assert (
        _index(fake_runner, "spo folder get")
        < _index(fake_runner, "spo folder add")
        < _index(fake_runner, "spo page template list")
        < _index(fake_runner, "spo page copy")
        < _index(fake_runner, "--publish")
    )
    assert len(fake_runner.commands("--metadataOnly")) == 2


def test_missing_template_falls_back_to_default_page(
    fake_runner: FakeRunner,
    make_session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND)
    fake_runner.on("spo page template list", ok([]))
    orchestrator = make_session().orchestrator

    with caplog.at_level(logging.WARNING, logger="page_doctor"):
        result = orchestrator.ensure_page(
            WEB_URL,
            "intro.aspx",
            PageAttributes(title="Intro", template="Missing"),
        )

    assert result.created and not result.existed
    assert len(fake_runner.commands("spo page add")) == 1
    assert "Template 'Missing' not found" in caplog.text


def test_existing_folders_are_checked_once_per_run(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND)
    orchestrator = make_session().orchestrator

    orchestrator.ensure_page(WEB_URL, "guides/setup/a.aspx", PageAttributes(title="A"))
    orchestrator.ensure_page(WEB_URL, "guides/setup/b.aspx", PageAttributes(title="B"))

    checks = fake_runner.commands("spo folder get")
    assert [call.rsplit(" ", 1)[-1] for call in checks] == [
        "/sites/docs/sitepages/guides",
        "/sites/docs/sitepages/guides/setup",
    ]
    assert fake_runner.commands("spo folder add") == []


def test_folder_creation_failure_is_fatal(
    fake_runner: FakeRunner,
    make_session,
    sleeps: list[float],
) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND)
    fake_runner.on("spo folder get", fail("Error: Folder does not exist"))
    fake_runner.on("spo folder add", fail("Error: Access denied"))
    orchestrator = make_session().orchestrator

    with pytest.raises(CommandExecutionError, match="Access denied"):
        orchestrator.ensure_page(WEB_URL, "news/launch.aspx", PageAttributes(title="Launch"))

    assert len(fake_runner.commands("spo folder add")) == 2
    assert sleeps == [5.0]
    assert fake_runner.commands("spo page add") == []


def test_lenient_lookup_treats_outage_as_absence(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", fail("Error: 503 Service Unavailable"))
    orchestrator = make_session().orchestrator

    result = orchestrator.ensure_page(WEB_URL, "intro.aspx", PageAttributes(title="Intro"))

    assert result.created
    assert len(fake_runner.commands("--metadataOnly")) == 1


def test_strict_lookup_propagates_unclassified_failures(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("--metadataOnly", fail("Error: 503 Service Unavailable"))
    orchestrator = make_session(strict_lookups=True).orchestrator

    with pytest.raises(CommandExecutionError, match="503"):
        orchestrator.ensure_page(WEB_URL, "intro.aspx", PageAttributes(title="Intro"))
    assert fake_runner.commands("spo page add") == []


def test_strict_lookup_still_creates_on_not_found(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("--metadataOnly", NOT_FOUND)
    orchestrator = make_session(strict_lookups=True).orchestrator

    assert orchestrator.ensure_page(WEB_URL, "a.aspx", PageAttributes(title="A")).created


def test_publish_skips_check_in_when_nothing_is_checked_out(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("spo file get", ok({"CheckOutType": 2, "CheckedOutByUser": None}))
    orchestrator = make_session().orchestrator

    orchestrator.publish(WEB_URL, "intro.aspx")

    [probe] = fake_runner.commands("spo file get")
    assert "--url /sites/docs/sitepages/intro.aspx -o json" in probe
    assert fake_runner.commands("spo file checkin") == []
    [published] = fake_runner.commands("spo page set")
    assert published.endswith("--publish")


def test_publish_checks_in_held_checkout_and_swallows_failure(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("spo file get", ok({"CheckOutType": 0, "CheckedOutByUserId": 12}))
    fake_runner.on("spo file checkin", fail("Error: The file is checked out by someone else"))
    orchestrator = make_session().orchestrator

    orchestrator.publish(WEB_URL, "intro.aspx")

    assert len(fake_runner.commands("spo file checkin")) == 1
    assert _index(fake_runner, "spo file checkin") < _index(fake_runner, "--publish")


def test_publish_checkout_lookup_failure_means_no_check_in(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("spo file get", fail("Error: File Not Found."))
    orchestrator = make_session(retry=False).orchestrator

    orchestrator.publish(WEB_URL, "intro.aspx")

    assert fake_runner.commands("spo file checkin") == []
    assert len(fake_runner.commands("--publish")) == 1


@pytest.mark.parametrize(
    ("info", "expected"),
    [
        ({"CheckOutType": 2}, False),
        ({"CheckOutType": "None"}, False),
        ({"CheckOutType": 0}, True),
        ({"CheckOutType": "Online"}, True),
        ({"CheckedOutByUser": {"Title": "Ann"}}, True),
        ({"LockedByUserId": 5}, True),
        ({}, False),
    ],
)
def test_is_checked_out(info: dict[str, Any], expected: bool) -> None:
    assert is_checked_out(info) is expected


def test_clean_removes_only_untouched_pages(fake_runner: FakeRunner, make_session) -> None:
    _with_listing(
        fake_runner,
        "/sites/docs/SitePages/keep.aspx",
        "/sites/docs/SitePages/Old.aspx",
        "/sites/docs/SitePages/Templates/Template.aspx",
        "/sites/docs/SitePages/Forms/AllPages.aspx",
        "/sites/docs/SitePages/archive",
    )
    session = make_session()
    orchestrator = session.orchestrator
    orchestrator.load_pages(WEB_URL)
    session.cache.record_processed("keep.aspx", 1)

    lines = list(orchestrator.clean(WEB_URL))

    assert lines == ["Cleaning up page: old.aspx"]
    [removal] = fake_runner.commands("spo file remove")
    assert removal.endswith("--url /sites/docs/sitepages/old.aspx --force")


def test_clean_uses_the_listing_snapshot_from_the_start(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    _with_listing(fake_runner, "/sites/docs/SitePages/old.aspx")
    fake_runner.on("--metadataOnly", NOT_FOUND)
    orchestrator = make_session().orchestrator
    orchestrator.load_pages(WEB_URL)

    orchestrator.ensure_page(WEB_URL, "fresh.aspx", PageAttributes(title="Fresh"))
    list(orchestrator.clean(WEB_URL))

    assert len(fake_runner.commands("spo listitem list")) == 1
    assert [call.split("--url ")[1] for call in fake_runner.commands("spo file remove")] == [
        "/sites/docs/sitepages/old.aspx --force",
    ]


def test_clean_continue_on_error_reports_and_goes_on(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    _with_listing(
        fake_runner,
        "/sites/docs/SitePages/a.aspx",
        "/sites/docs/SitePages/b.aspx",
        "/sites/docs/SitePages/c.aspx",
    )
    fake_runner.on("/sitepages/b.aspx --force", fail("Error: Access denied"))
    session = make_session(continue_on_error=True, retry=False)

    lines = list(session.orchestrator.clean(WEB_URL))

    assert lines == [
        "Cleaning up page: a.aspx",
        "Cleaning up page: b.aspx",
        "Failed to clean up page: b.aspx (Error: Access denied)",
        "Cleaning up page: c.aspx",
    ]
    assert len(fake_runner.commands("spo file remove")) == 3
    assert session.engine.status.errors == ["b.aspx: Error: Access denied"]


def test_clean_aborts_on_first_error_without_rollback(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    _with_listing(
        fake_runner,
        "/sites/docs/SitePages/a.aspx",
        "/sites/docs/SitePages/b.aspx",
        "/sites/docs/SitePages/c.aspx",
    )
    fake_runner.on("/sitepages/b.aspx --force", fail("Error: Access denied"))
    orchestrator = make_session(retry=False).orchestrator
    seen: list[str] = []

    with pytest.raises(CommandExecutionError, match="Access denied"):
        for line in orchestrator.clean(WEB_URL):
            seen.append(line)

    assert seen == ["Cleaning up page: a.aspx", "Cleaning up page: b.aspx"]
    removals = fake_runner.commands("spo file remove")
    assert len(removals) == 2
    assert "c.aspx" not in " ".join(removals)


def test_body_updates_existing_markdown_control(fake_runner: FakeRunner, make_session) -> None:
    canvas = (
        '[{"id": "c1", "webPartId": "other"}, '
        f'{{"id": "c2", "webPartId": "{MARKDOWN_WEB_PART_ID.upper()}"}}]'
    )
    fake_runner.on("spo page get", ok({"canvasContentJson": canvas}))
    orchestrator = make_session().orchestrator

    control_id = find_markdown_control(orchestrator.page_controls(WEB_URL, "intro.aspx"))
    orchestrator.set_body(WEB_URL, "intro.aspx", control_id, "/tmp/intro.json")

    assert control_id == "c2"
    [update] = fake_runner.commands("spo page control set")
    assert update.endswith("--id c2 --webPartData @/tmp/intro.json")


def test_body_adds_markdown_web_part_when_none_exists(
    fake_runner: FakeRunner,
    make_session,
) -> None:
    fake_runner.on("spo page get", ok({}))
    orchestrator = make_session().orchestrator

    assert orchestrator.page_controls(WEB_URL, "intro.aspx") == "[]"
    orchestrator.ensure_default_section(WEB_URL, "intro.aspx")
    orchestrator.set_body(WEB_URL, "intro.aspx", None, "/tmp/intro.json")

    [section] = fake_runner.commands("spo page section add")
    assert section.endswith("--pageName intro.aspx --sectionTemplate OneColumn")
    [added] = fake_runner.commands("spo page clientsidewebpart add")
    assert f"--webPartId {MARKDOWN_WEB_PART_ID}" in added


def test_find_markdown_control_tolerates_bad_canvas() -> None:
    assert find_markdown_control("not json") is None
    assert find_markdown_control("{}") is None
    assert find_markdown_control("[]") is None


def test_set_metadata_resolves_item_id_once(fake_runner: FakeRunner, make_session) -> None:
    fake_runner.on("spo list get", ok({"Id": "list-1", "Title": "Site Pages"}))
    fake_runner.on("--metadataOnly", ok(_page_json("Intro", item_id=9)))
    orchestrator = make_session().orchestrator

    orchestrator.set_metadata(WEB_URL, "intro.aspx", {"Category": "Release Notes"})
    orchestrator.set_metadata(WEB_URL, "intro.aspx", {"Owner": "docs"})

    assert len(fake_runner.commands("--metadataOnly")) == 1
    assert len(fake_runner.commands("spo list get")) == 1
    first, second = fake_runner.commands("spo listitem set")
    assert first.startswith("m365 spo listitem set --listId list-1 --id 9 ")
    assert first.endswith('--Category "Release Notes"')
    assert second.endswith("--Owner docs")


def test_page_changes_cover_layout_and_comments() -> None:
    page = RemotePage(
        title="Intro",
        layout_type="Home",
        comments_disabled=False,
        description=None,
        item_id=1,
    )

    changes = page_changes(page, PageAttributes(title="Intro", comments_disabled=True))

    assert changes == ['--layoutType "Article"', "--commentsEnabled false"]
