"""Tests for CSV tokenizing, header mapping and row normalization."""

from __future__ import annotations

from datetime import date

import pytest

from backlink_analyzer.csv_ingest import (
    HEADER_ALIASES,
    decode_upload,
    detect_delimiter,
    extract_domain,
    map_row,
    map_rows,
    parse_backlinks_csv,
    parse_date,
    parse_int,
    resolve_columns,
    tokenize,
)
from backlink_analyzer.errors import ParseError
from backlink_analyzer.schemas import BacklinkField

TODAY = date(2025, 3, 1)
HEADERS = ["Source URL", "Page Ascore", "External Links", "Nofollow"]


class TestTokenizer:
    def test_comma_delimited_with_quoted_delimiter(self) -> None:
        rows = tokenize('a,"b,c", d \n1,2,3')
        assert rows == [["a", "b,c", "d"], ["1", "2", "3"]]

    def test_tab_detected_from_first_line(self) -> None:
        rows = tokenize("Source url\tPage ascore\nhttps://a.com/x,y\t12")
        assert rows == [["Source url", "Page ascore"], ["https://a.com/x,y", "12"]]

    def test_crlf_line_endings_are_trimmed(self) -> None:
        rows = tokenize("h1,h2\r\nv1,v2\r\n")
        assert rows == [["h1", "h2"], ["v1", "v2"]]

    def test_blank_text_yields_no_rows(self) -> None:
        assert tokenize("   \n  ") == []

    def test_detect_delimiter(self) -> None:
        assert detect_delimiter("a\tb,c") == "\t"
        assert detect_delimiter("a,b") == ","

    def test_decode_upload_drops_bom(self) -> None:
        assert decode_upload("\ufeffSource url".encode("utf-8")) == "Source url"


class TestColumnMapper:
    @pytest.mark.parametrize(
        "field,alias",
        [(field, alias) for field, aliases in HEADER_ALIASES.items() for alias in aliases],
    )
    def test_every_alias_matches_regardless_of_case_and_spacing(self, field: BacklinkField, alias: str) -> None:
        messy = "  " + alias.upper().replace(" ", "   ") + " "
        columns = resolve_columns(["Anchor", messy])
        assert columns[field] == 1

    def test_first_matching_header_wins(self) -> None:
        columns = resolve_columns(["URL", "Source url"])
        assert columns[BacklinkField.SOURCE_URL] == 0

    def test_unknown_columns_are_ignored(self) -> None:
        assert resolve_columns(["Anchor", "Internal links"]) == {}

    def test_maps_and_coerces_a_row(self) -> None:
        record = map_row(HEADERS, ["https://Blog.Example.com/post", "45", "12", "TRUE"], today=TODAY)

        assert record.source_url == "https://Blog.Example.com/post"
        assert record.source_domain == "blog.example.com"
        assert record.page_ascore == 45
        assert record.external_links == 12
        assert record.is_nofollow is True
        assert record.target_url == ""
        assert record.first_seen == TODAY
        assert record.last_seen == TODAY

    @pytest.mark.parametrize("raw,expected", [("12", 12), ("12.7", 12), ("-3", -3), ("n/a", 0), ("", 0)])
    def test_integer_fallback(self, raw: str, expected: int) -> None:
        assert parse_int(raw) == expected

    @pytest.mark.parametrize("raw,expected", [("TRUE", True), ("true", True), ("FALSE", False), ("yes", False)])
    def test_nofollow_flag(self, raw: str, expected: bool) -> None:
        record = map_row(HEADERS, ["https://a.com/", "1", "1", raw], today=TODAY)
        assert record.is_nofollow is expected

    def test_stray_quotes_are_stripped_from_values(self) -> None:
        record = map_row(HEADERS, ['https://a.com/"x"', '"7"', "1", "FALSE"], today=TODAY)
        assert record.source_url == "https://a.com/x"
        assert record.page_ascore == 7

    def test_short_row_uses_defaults(self) -> None:
        record = map_row(HEADERS, ["https://a.com/"], today=TODAY)
        assert record.page_ascore == 0
        assert record.external_links == 0
        assert record.is_nofollow is False

    def test_missing_source_url_is_rejected(self) -> None:
        with pytest.raises(ParseError):
            map_row(HEADERS, ["", "10", "1", "FALSE"], today=TODAY)

    @pytest.mark.parametrize("url", [
        "not a url",
        "example.com/page",
        "http://[::1",
        "mailto:someone@example.com",
        "https://exa mple.com/p",
        "http://a.com:99999/",
        "https://a.com:abc/",
        "http://[fe80::zz]/",
    ])
    def test_malformed_or_relative_urls_are_rejected(self, url: str) -> None:
        with pytest.raises(ParseError):
            extract_domain(url)

    @pytest.mark.parametrize("url, host", [
        ("https://A.com:443/page", "a.com"),
        ("http://[::1]:8080/x", "::1"),
        ("https://b\u00fccher.de/", "b\u00fccher.de"),
        ("https://my_site.example.com/", "my_site.example.com"),
    ])
    def test_valid_hosts_are_accepted(self, url: str, host: str) -> None:
        assert extract_domain(url) == host

    def test_dates(self) -> None:
        assert parse_date("2024-01-15") == date(2024, 1, 15)
        assert parse_date("2024-01-15 08:30:00") == date(2024, 1, 15)
        assert parse_date("Jan 15, 2024") == date(2024, 1, 15)
        assert parse_date("someday") is None

        headers = ["Source url", "First seen", "Last seen"]
        record = map_row(headers, ["https://a.com/", "2024-01-15", "garbage"], today=TODAY)
        assert record.first_seen == date(2024, 1, 15)
        assert record.last_seen == TODAY


class TestMapRows:
    def test_broken_rows_are_skipped_without_raising(self) -> None:
        rows = [
            HEADERS,
            ["https://good.com/a", "10", "1", "FALSE"],
            ["not a url", "90", "1", "FALSE"],
            ["", "90", "1", "FALSE"],
            ["https://also-good.com/b", "20", "2", "TRUE"],
        ]
        records = map_rows(rows, today=TODAY)
        assert [r.source_domain for r in records] == ["good.com", "also-good.com"]

    def test_header_only_file(self) -> None:
        assert map_rows([HEADERS]) == []


class TestParseBacklinksCsv:
    def test_link_farm_row_is_dropped(self) -> None:
        text = '"Source URL","Page Ascore","External Links","Nofollow"\n"https://farm.com/p","90","5000","FALSE"\n'
        assert parse_backlinks_csv(text) == []

    def test_end_to_end_tab_export(self) -> None:
        text = "\n".join([
            "Source url\tTarget url\tPage ascore\tExternal links\tNofollow",
            "https://a.com/1\thttps://acme.test/\t50\t10\tFALSE",
            "https://a.com/2\thttps://acme.test/\t80\t5\tFALSE",
            "https://a.com/3\thttps://acme.test/\t80\t2\tTRUE",
            "https://b.com/1\thttps://acme.test/pricing\t30\t1\tFALSE",
        ])
        batch = parse_backlinks_csv(text, today=TODAY)

        assert [(r.source_url, r.page_ascore, r.external_links) for r in batch] == [
            ("https://a.com/3", 80, 2),
            ("https://b.com/1", 30, 1),
        ]
        assert batch[1].target_url == "https://acme.test/pricing"

    def test_rows_with_malformed_hosts_or_ports_are_dropped(self) -> None:
        text = "\n".join([
            "Source url,External links",
            "https://exa mple.com/p,1",
            "http://a.com:99999/,1",
            "https://a.com:abc/,1",
        ])
        assert parse_backlinks_csv(text, today=TODAY) == []

    def test_threshold_is_configurable(self) -> None:
        text = "Source url,External links\nhttps://a.com/,150\n"
        assert parse_backlinks_csv(text, threshold=100) == []
        assert len(parse_backlinks_csv(text, threshold=200)) == 1
