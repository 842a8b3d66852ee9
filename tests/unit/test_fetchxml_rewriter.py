from __future__ import annotations

import re

import pytest

from record_counter.errors import MalformedQueryError
from record_counter.fetchxml.rewriter import (
    parse_root,
    rewrite_for_page,
    rewrite_for_total_count,
)
from tests.conftest import SIMPLE_FETCH

_ROOT_TAG_RE = re.compile(r"<fetch[^>]*>")


def _root_tag(document: str) -> str:
    match = _ROOT_TAG_RE.search(document)
    assert match is not None
    return match.group(0)


def test_parse_root_reads_attributes_in_order() -> None:
    root = parse_root(SIMPLE_FETCH)
    assert [a.name for a in root.attributes] == ["version", "mapping", "distinct"]
    assert root.get("mapping") == "logical"
    assert root.get("MAPPING") == "logical"
    assert root.get("page") is None


def test_parse_and_render_round_trip_is_unchanged() -> None:
    assert parse_root(SIMPLE_FETCH).render() == SIMPLE_FETCH


def test_rewrite_injects_page_and_count() -> None:
    rewritten = rewrite_for_page(SIMPLE_FETCH, 3, 5000)
    assert _root_tag(rewritten) == (
        '<fetch version="1.0" mapping="logical" distinct="false" page="3" count="5000">'
    )


def test_rewrite_replaces_existing_pagination_attributes() -> None:
    document = (
        "<fetch version='1.0' count='50' page=\"7\" "
        "paging-cookie=\"&lt;cookie page=&quot;6&quot;&gt;&lt;/cookie&gt;\" mapping='logical'>"
        '<entity name="contact" /></fetch>'
    )
    rewritten = rewrite_for_page(document, 1, 5000)
    assert _root_tag(rewritten) == (
        "<fetch version='1.0' mapping='logical' page=\"1\" count=\"5000\">"
    )
    assert "paging-cookie" not in rewritten


def test_rewrite_is_idempotent() -> None:
    once = rewrite_for_page(SIMPLE_FETCH, 2, 5000)
    twice = rewrite_for_page(once, 2, 5000)
    assert twice == once


def test_rewrite_with_different_pages_keeps_single_page_attribute() -> None:
    first = rewrite_for_page(SIMPLE_FETCH, 1, 5000)
    second = rewrite_for_page(first, 2, 5000)
    root_tag = _root_tag(second)
    assert root_tag.count(" page=") == 1
    assert root_tag.count(" count=") == 1
    assert 'page="2"' in root_tag


def test_rewrite_leaves_filters_untouched() -> None:
    rewritten = rewrite_for_page(SIMPLE_FETCH, 4, 10)
    body_before = SIMPLE_FETCH[len(_root_tag(SIMPLE_FETCH)):]
    body_after = rewritten[len(_root_tag(rewritten)):]
    assert body_after == body_before


def test_rewrite_does_not_touch_nested_count_attributes() -> None:
    document = (
        '<fetch aggregate="false"><entity name="account">'
        '<link-entity name="contact" from="parentcustomerid" to="accountid" count="3" />'
        "</entity></fetch>"
    )
    rewritten = rewrite_for_page(document, 1, 5000)
    assert 'to="accountid" count="3"' in rewritten


def test_rewrite_preserves_xml_declaration_prefix() -> None:
    document = '<?xml version="1.0"?>\n<fetch><entity name="account" /></fetch>'
    rewritten = rewrite_for_page(document, 1, 100)
    assert rewritten.startswith('<?xml version="1.0"?>\n<fetch page="1" count="100">')


def test_fetch_inside_leading_comment_is_not_the_root() -> None:
    document = (
        '<!-- old: <fetch page="9" count="3"> -->\n'
        '<fetch version="1.0"><entity name="account" /></fetch>'
    )
    rewritten = rewrite_for_page(document, 2, 50)
    assert rewritten == (
        '<!-- old: <fetch page="9" count="3"> -->\n'
        '<fetch version="1.0" page="2" count="50"><entity name="account" /></fetch>'
    )
    assert parse_root(document).get("page") is None


def test_root_tag_is_case_insensitive() -> None:
    rewritten = rewrite_for_page('<FETCH Count="5"><entity name="a" /></FETCH>', 1, 10)
    assert rewritten.startswith('<FETCH page="1" count="10">')


def test_unquoted_attribute_values_are_accepted() -> None:
    rewritten = rewrite_for_page('<fetch count=50 version="1.0"><entity name="a" /></fetch>', 1, 10)
    assert _root_tag(rewritten) == '<fetch version="1.0" page="1" count="10">'


def test_self_closing_root() -> None:
    assert rewrite_for_page("<fetch/>", 1, 10) == '<fetch page="1" count="10"/>'


@pytest.mark.parametrize(
    "document",
    [
        "",
        "   ",
        '<entity name="account" />',
        "not xml at all",
        "<fetchxml/>",
        "<!-- <fetch count=\"5\"> --><entity name=\"a\" />",
        "<!-- unterminated <fetch>",
    ],
)
def test_missing_root_element_is_fatal(document: str) -> None:
    with pytest.raises(MalformedQueryError):
        rewrite_for_page(document, 1, 5000)


def test_unparseable_attributes_are_fatal() -> None:
    with pytest.raises(MalformedQueryError):
        rewrite_for_page('<fetch version="1.0><entity name="a" /></fetch>', 1, 5000)


def test_duplicate_root_attributes_are_fatal() -> None:
    with pytest.raises(MalformedQueryError):
        parse_root('<fetch page="1" page="2"><entity name="a" /></fetch>')


@pytest.mark.parametrize("page, size", [(0, 10), (1, 0), (-1, 5000)])
def test_invalid_page_arguments(page: int, size: int) -> None:
    with pytest.raises(ValueError):
        rewrite_for_page(SIMPLE_FETCH, page, size)


def test_total_count_variant_adds_flag_and_minimal_count() -> None:
    rewritten = rewrite_for_total_count(SIMPLE_FETCH)
    assert _root_tag(rewritten) == (
        '<fetch version="1.0" mapping="logical" distinct="false" '
        'returntotalrecordcount="true" count="1">'
    )


def test_total_count_variant_overrides_existing_values() -> None:
    document = (
        "<fetch returntotalrecordcount='false' count='250' page='4'>"
        '<entity name="account" /></fetch>'
    )
    rewritten = rewrite_for_total_count(document)
    assert _root_tag(rewritten) == '<fetch returntotalrecordcount="true" count="1">'


def test_total_count_variant_on_malformed_input() -> None:
    with pytest.raises(MalformedQueryError):
        rewrite_for_total_count("<entity />")
