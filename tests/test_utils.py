from types import SimpleNamespace

import pytest

from app.utils import build_image_url, dedupe_by_id, parse_id_list, unique_ids


def test_dedupe_by_id_keeps_first_occurrence():
    first = SimpleNamespace(id=1, title="first")
    second = SimpleNamespace(id=2, title="second")
    repeat = SimpleNamespace(id=1, title="repeat")

    assert dedupe_by_id([first, second, repeat]) == [first, second]


def test_unique_ids_preserves_order():
    assert unique_ids([28, 12, 28, 35, 12]) == [28, 12, 35]


def test_parse_id_list_accepts_comma_separated_values():
    assert parse_id_list("28, 12,,35,28") == [28, 12, 35]
    assert parse_id_list(["28,12", "35"]) == [28, 12, 35]
    assert parse_id_list(None) == []


def test_parse_id_list_rejects_non_numeric_values():
    with pytest.raises(ValueError, match="Invalid id"):
        parse_id_list("28,action")


def test_build_image_url_joins_fragments():
    base = "https://image.tmdb.org/t/p/w500"
    assert build_image_url("/poster.jpg", base) == f"{base}/poster.jpg"
    assert build_image_url("https://cdn.example.com/p.jpg", base) == "https://cdn.example.com/p.jpg"
    assert build_image_url("", base) == ""
