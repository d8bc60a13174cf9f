# === NAVMAP v1 ===
# {
#   "module": "tests.resource_fetch.test_protocol",
#   "purpose": "Exercise the HEAD/redirect/index/GET state machine against the in-memory backend.",
#   "sections": [
#     {"id": "basic", "name": "Basic Retrieval", "anchor": "BAS", "kind": "tests"},
#     {"id": "redirects", "name": "Redirects", "anchor": "RED", "kind": "tests"},
#     {"id": "index", "name": "Index Fallback", "anchor": "IDX", "kind": "tests"},
#     {"id": "locate", "name": "Locate Retry & Conditional Requests", "anchor": "LOC", "kind": "tests"},
#     {"id": "repair", "name": "Undercount Repair", "anchor": "REP", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Protocol client behaviour: redirects, index fallback, locate retry, repair."""

from __future__ import annotations

import pytest

from WTTPGateway.ResourceFetch.errors import BackendCallError
from WTTPGateway.ResourceFetch.models import ChunkRange, RedirectHop, RequestOptions


def _locate_paths(backend):
    return [args[1] for method, args in backend.call_log if method == "locate"]


def _locate_ranges(backend):
    return [
        (args[2].start, args[2].end) for method, args in backend.call_log if method == "locate"
    ]


def _head_paths(backend):
    return [args[1] for method, args in backend.call_log if method == "head"]


def _fail_first(method_name, count=1):
    seen = {"n": 0}

    def hook(method, args):
        if method != method_name:
            return None
        seen["n"] += 1
        if seen["n"] <= count:
            return BackendCallError("GET", "transient revert")
        return None

    return hook


def _lift_limit_at(backend, call_number):
    def hook(method, args):
        if method == "locate" and backend.calls["locate"] == call_number:
            backend.locate_chunk_limit = None
        return None

    return hook


# --- Basic retrieval ---------------------------------------------------------


class TestBasicRetrieval:
    def test_fetches_and_reassembles_content(self, client, polygon, site):
        polygon.publish(site, "/hello.txt", b"hello, chain world", chunk_size=5)

        result = client.fetch(site, "/hello.txt")

        assert result.status == 200
        assert result.ok
        assert result.content == b"hello, chain world"
        assert result.text() == "hello, chain world"
        assert result.path == "/hello.txt"
        assert result.redirects == ()
        assert not result.is_partial
        assert len(result.chunk_ids) == 4

    def test_text_uses_declared_charset_whatever_the_mime_type(self, client, polygon, site):
        payload = "caf\u00e9".encode("latin-1")
        polygon.publish(site, "/caf.bin", payload, mime_type="0x6970", charset="0x6c31")

        result = client.fetch(site, "/caf.bin")

        assert result.text() == "caf\u00e9"

    def test_head_only_runs_a_single_metadata_query(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"data")

        result = client.fetch(site, "file.txt", RequestOptions(head_only=True))

        assert result.status == 200
        assert result.content is None
        assert result.head.metadata.size == 4
        assert polygon.calls["head"] == 1
        assert polygon.calls["locate"] == 0

    def test_head_only_does_not_follow_redirects(self, client, polygon, site):
        polygon.redirect(site, "/moved", "/new.txt", code=308)

        result = client.fetch(site, "/moved", RequestOptions(head_only=True))

        assert result.status == 308
        assert result.redirects == ()
        assert polygon.calls["head"] == 1

    def test_chunk_ids_only_skips_chunk_reads(self, client, polygon, site):
        resource = polygon.publish(site, "/big.bin", b"z" * 16, chunk_size=4)

        result = client.fetch(site, "/big.bin", RequestOptions(chunk_ids_only=True))

        assert result.chunk_ids == tuple(resource.chunk_ids)
        assert len(result.chunk_ids) == 4
        assert result.content is None
        assert polygon.calls["read_chunk"] == 0

    def test_empty_resource_has_empty_content(self, client, polygon, site):
        polygon.publish(site, "/empty.txt", b"")

        result = client.fetch(site, "/empty.txt")

        assert result.status == 200
        assert result.content == b""
        assert polygon.calls["read_chunk"] == 0

    def test_missing_file_is_404_without_content(self, client, polygon, site):
        result = client.fetch(site, "/missing.txt")

        assert result.status == 404
        assert result.content is None
        assert _locate_paths(polygon) == ["/missing.txt"]

    def test_malformed_site_address_is_404(self, client, polygon):
        result = client.fetch("not-an-address", "/x.txt")

        assert result.status == 404
        assert result.content is None
        assert polygon.calls["head"] == 1
        assert polygon.calls["locate"] == 1

    def test_malformed_storage_address_is_call_error(self, polygon):
        with pytest.raises(BackendCallError):
            polygon.read_chunk("0xnot-storage", "0x" + "01" * 32)


# --- Redirects ---------------------------------------------------------------


class TestRedirects:
    def test_absolute_redirect_is_recorded(self, client, polygon, site):
        polygon.redirect(site, "/old", "/new.txt")
        polygon.publish(site, "/new.txt", b"moved here")

        result = client.fetch(site, "/old")

        assert result.content == b"moved here"
        assert result.path == "/new.txt"
        assert result.redirects == (RedirectHop("/old", "/new.txt", 301),)

    def test_relative_redirect_resolves_against_current_path(self, client, polygon, site):
        polygon.redirect(site, "/a/b/c", "../d.txt", code=302)
        polygon.publish(site, "/a/d.txt", b"relative")

        result = client.fetch(site, "/a/b/c")

        assert result.content == b"relative"
        assert result.path == "/a/d.txt"
        assert result.redirects[0].status == 302

    def test_foreign_location_keeps_only_the_path(self, client, polygon, site):
        polygon.redirect(site, "/go", "wttp://other.eth/landing.txt", code=307)
        polygon.publish(site, "/landing.txt", b"landed")

        result = client.fetch(site, "/go")

        assert result.content == b"landed"
        assert result.path == "/landing.txt"

    def test_redirect_cycle_stops_at_limit(self, client, polygon, site):
        polygon.redirect(site, "/a", "/b")
        polygon.redirect(site, "/b", "/a")

        result = client.fetch(site, "/a", RequestOptions(max_redirects=5))

        assert result.status == 301
        assert len(result.redirects) == 5
        assert polygon.calls["head"] == 6
        assert polygon.calls["locate"] == 0
        assert result.content is None

    def test_zero_redirect_limit_returns_first_redirect(self, client, polygon, site):
        polygon.redirect(site, "/a", "/b")

        result = client.fetch(site, "/a", RequestOptions(max_redirects=0))

        assert result.status == 301
        assert result.redirects == ()
        assert _head_paths(polygon) == ["/a"]


# --- Index fallback ----------------------------------------------------------


class TestIndexFallback:
    def test_directory_falls_back_to_index_candidates_in_order(self, client, polygon, site):
        polygon.publish(site, "/docs/index.md", b"# docs")

        result = client.fetch(site, "/docs/")

        assert result.content == b"# docs"
        assert result.path == "/docs/index.md"
        assert _head_paths(polygon) == [
            "/docs/",
            "/docs/index.html",
            "/docs/index.htm",
            "/docs/index.md",
        ]

    def test_dotless_path_is_treated_as_directory(self, client, polygon, site):
        polygon.publish(site, "/about/index.html", b"<p>about</p>")

        result = client.fetch(site, "/about")

        assert result.content == b"<p>about</p>"
        assert result.path == "/about/index.html"

    def test_no_candidate_keeps_404(self, client, polygon, site):
        result = client.fetch(site, "/nothing/")

        assert result.status == 404
        assert polygon.calls["head"] == 5

    def test_redirect_into_directory_uses_index(self, client, polygon, site):
        polygon.redirect(site, "/start", "/docs/", code=302)
        polygon.publish(site, "/docs/index.html", b"<h1>docs</h1>")

        result = client.fetch(site, "/start")

        assert result.content == b"<h1>docs</h1>"
        assert result.path == "/docs/index.html"
        assert result.redirects == (RedirectHop("/start", "/docs/", 302),)


# --- Locate retry & conditional requests -------------------------------------


class TestLocate:
    def test_failed_head_falls_through_to_direct_locate(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"restricted head")
        polygon.head_disabled = True

        result = client.fetch(site, "/file.txt")

        assert result.status == 200
        assert result.content == b"restricted head"
        assert polygon.calls["locate"] == 1

    def test_flaky_locate_is_retried_once(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"eventually")
        polygon.fault_hook = _fail_first("locate")

        result = client.fetch(site, "/file.txt")

        assert result.content == b"eventually"
        assert polygon.calls["locate"] == 2

    def test_out_of_bounds_range_retries_with_full_range(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"AAAABBBBCCCCDDDD", chunk_size=4)

        result = client.fetch(site, "/file.txt", RequestOptions(chunk_range=ChunkRange(5, 9)))

        assert _locate_ranges(polygon) == [(5, 9), (0, -1)]
        assert result.content == b"AAAABBBBCCCCDDDD"
        assert not result.is_partial

    def test_double_locate_failure_is_404(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"never")
        polygon.fault_hook = _fail_first("locate", count=10)

        result = client.fetch(site, "/file.txt")

        assert result.status == 404
        assert result.content is None
        assert polygon.calls["locate"] == 2

    def test_sub_range_is_partial(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"AAAABBBBCCCCDDDD", chunk_size=4)

        result = client.fetch(site, "/file.txt", RequestOptions(chunk_range=ChunkRange(1, 1)))

        assert result.status == 206
        assert result.content == b"BBBB"
        assert result.is_partial
        assert polygon.calls["locate"] == 1

    def test_matching_etag_is_not_modified(self, client, polygon, site):
        resource = polygon.publish(site, "/file.txt", b"cached")

        result = client.fetch(site, "/file.txt", RequestOptions(if_none_match=resource.etag))

        assert result.status == 304
        assert result.content is None

    def test_if_modified_since(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"dated", last_modified=1000)

        fresh = client.fetch(site, "/file.txt", RequestOptions(if_modified_since=999))
        stale = client.fetch(site, "/file.txt", RequestOptions(if_modified_since=1000))

        assert fresh.status == 200
        assert fresh.content == b"dated"
        assert stale.status == 304
        assert stale.content is None


# --- Undercount repair -------------------------------------------------------


class TestUndercountRepair:
    def test_repair_without_improvement_keeps_partial_result(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"AAAABBBBCCCC", chunk_size=4)
        polygon.locate_chunk_limit = 2

        result = client.fetch(site, "/file.txt")

        assert _locate_ranges(polygon) == [(0, -1), (0, 2)]
        assert result.content == b"AAAABBBB"
        assert result.is_partial

    def test_repair_adopts_complete_listing(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"AAAABBBBCCCC", chunk_size=4)
        polygon.locate_chunk_limit = 2
        polygon.fault_hook = _lift_limit_at(polygon, 2)

        result = client.fetch(site, "/file.txt")

        assert result.content == b"AAAABBBBCCCC"
        assert not result.is_partial

    def test_empty_listing_pages_in_first_chunk(self, client, polygon, site):
        polygon.publish(site, "/file.txt", b"AAAABBBBCCCC", chunk_size=4)
        polygon.locate_chunk_limit = 0
        polygon.fault_hook = _lift_limit_at(polygon, 3)

        result = client.fetch(site, "/file.txt")

        assert _locate_ranges(polygon) == [(0, -1), (0, 2), (0, 0)]
        assert result.content == b"AAAA"
