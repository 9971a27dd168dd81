import pytest

from app.title_matcher import (
    build_query_variants,
    normalize,
    pick_best_eligible,
    pick_fallback_candidate,
    score,
)

from conftest import make_item


@pytest.mark.parametrize(
    "title",
    [
        "【日本語版】カタン 新版 (2015)",
        "ドミニオン：陰謀 第二版",
        "新新版版",
        "  ito   イト  ",
        "Wingspan: European Expansion",
        "Pandemic - Revised 2nd Edition",
        "カルカソンヌ２０２１",
        "",
    ],
)
def test_normalize_is_idempotent(title):
    once = normalize(title)
    assert normalize(once) == once


def test_normalize_strips_brackets_noise_and_digits():
    assert normalize("【日本語版】カタン 新版 (2015)") == "カタン"
    assert normalize("「ito」 完全版") == "ito"


def test_normalize_deletes_brackets_and_noise_without_inserting_spaces():
    assert normalize("「ito」レインボー") == "itoレインボー"
    assert normalize("カタン拡張セット航海者版") == "カタン航海者版"
    assert score("「ito」レインボー", "itoレインボー") == 100
    assert score("カタン拡張セット航海者版", "カタン航海者版") == 100


def test_normalize_lowercases_for_case_insensitive_match():
    assert normalize("ITO Rainbow") == "ito rainbow"
    assert score("ITO Rainbow", "ito rainbow") == 100


def test_pick_best_eligible_finds_bracketed_title():
    rainbow = make_item(1, "itoレインボー")
    assert pick_best_eligible("「ito」レインボー", [make_item(2, "ドミニオン"), rainbow]) is rainbow


def test_normalize_strips_ascii_and_fullwidth_digits():
    assert normalize("ナンジャモンジャ１２３ 456") == "ナンジャモンジャ"


def test_normalize_english_noise_tokens():
    assert normalize("Pandemic Revised 2nd Edition") == "pandemic"
    assert normalize("Azul Reprint") == "azul"


def test_build_query_variants_order_and_dedupe():
    variants = build_query_variants(" ドミニオン：陰謀 日本語版 ")
    assert variants == [
        "ドミニオン：陰謀 日本語版",
        "ドミニオン：陰謀",
        "ドミニオン",
    ]


def test_build_query_variants_empty_title():
    assert build_query_variants("   ") == []


def test_score_rules():
    assert score("カタン", "カタン") == 100
    assert score("【新版】カタン", "カタン") == 100
    assert score("カタン", "カタンの開拓者たち") == 70
    assert score("カタンの開拓者たち 拡張", "カタン") == 60
    assert score("ドミニオン", "カタン") == 0
    assert score("", "カタン") == 0
    assert score("カタン", "123") == 0


def test_pick_best_eligible_skips_out_of_stock_and_hidden():
    exact_sold_out = make_item(1, "カタン", in_stock=False)
    exact_hidden = make_item(2, "カタン", visible=False)
    partial = make_item(3, "カタン 航海者版")
    assert pick_best_eligible("カタン", [exact_sold_out, exact_hidden, partial]) is partial


def test_pick_best_eligible_prefers_higher_score():
    partial = make_item(1, "カタン 航海者版")
    exact = make_item(2, "カタン")
    assert pick_best_eligible("カタン", [partial, exact]) is exact


def test_pick_best_eligible_tie_keeps_first():
    a = make_item(1, "カタン 航海者版")
    b = make_item(2, "カタン 都市と騎士版")
    assert pick_best_eligible("カタン", [a, b]) is a


def test_pick_best_eligible_none_when_nothing_scores():
    assert pick_best_eligible("カタン", [make_item(1, "ドミニオン")]) is None
    assert pick_best_eligible("カタン", []) is None


def test_pick_fallback_candidate_only_visible():
    hidden = make_item(1, "Catan", visible=False)
    visible = make_item(2, "Catan Junior", in_stock=False)
    assert pick_fallback_candidate("catan", [hidden, visible]) is visible
    assert pick_fallback_candidate("catan", [hidden]) is None
