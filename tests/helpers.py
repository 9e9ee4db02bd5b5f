"""Small helpers shared by the test modules."""

from __future__ import annotations

API = "/api/backlink-analyzer"

SEMRUSH_HEADER = (
    '"Page ascore","Source title","Source url","Target url","Anchor",'
    '"External links","Internal links","Nofollow","First seen","Last seen"'
)


def csv_bytes(*lines: str) -> bytes:
    return ("\n".join(lines) + "\n").encode("utf-8")


def semrush_row(url: str, score: int, external: int, nofollow: bool = False, target: str = "https://acme.test/") -> str:
    flag = "TRUE" if nofollow else "FALSE"
    return f'{score},"Title","{url}","{target}","anchor",{external},3,{flag},"2024-01-01","2024-02-01"'
