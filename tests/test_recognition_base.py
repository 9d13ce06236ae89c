"""
Tests for recognition/base.py and recognition/fallback.py.

Covers:
  - compute_confidence tiers
  - RecognitionResult normalisation, display_title, is_fallback / has_signal
  - parse_json_response: plain JSON, markdown-fenced JSON, invalid JSON
  - category table lookup and file-name derived names
  - build_fallback_result: fallback shape, error source when building fails
"""
from __future__ import annotations

from unittest.mock import patch

import pytest

from recognition.base import (
    ConfidenceTier,
    Label,
    RecognitionResult,
    RecognitionSource,
    VisualMatch,
    compute_confidence,
    parse_json_response,
)
from recognition.fallback import (
    build_fallback_result,
    category_terms,
    fallback_terms,
    name_from_image_ref,
)


def labels(*scores: float) -> list[Label]:
    return [Label(f"label{i}", s) for i, s in enumerate(scores)]


# ── compute_confidence ────────────────────────────────────────────────────────

class TestComputeConfidence:
    def test_best_guess_is_high(self):
        assert compute_confidence("Pocket watch", []) == ConfidenceTier.HIGH

    def test_five_labels_with_strong_top_score_is_high(self):
        assert compute_confidence("", labels(0.9, 0.5, 0.5, 0.5, 0.5)) == ConfidenceTier.HIGH

    def test_five_labels_top_score_not_above_threshold_is_medium(self):
        assert compute_confidence("", labels(0.8, 0.5, 0.5, 0.5, 0.5)) == ConfidenceTier.MEDIUM

    def test_four_labels_is_medium(self):
        assert compute_confidence(None, labels(0.99, 0.9, 0.9, 0.9)) == ConfidenceTier.MEDIUM

    def test_three_labels_is_low(self):
        assert compute_confidence(None, labels(0.99, 0.9, 0.9)) == ConfidenceTier.LOW

    def test_nothing_is_low(self):
        assert compute_confidence(None, []) == ConfidenceTier.LOW


# ── RecognitionResult ─────────────────────────────────────────────────────────

class TestRecognitionResult:
    def test_lists_and_strings_are_normalised(self):
        r = RecognitionResult(
            best_guess_title=None,  # type: ignore[arg-type]
            labels=[Label("Watch", 0.9)],
            visual_matches=[VisualMatch("https://x", "X")],
            confidence="medium",  # type: ignore[arg-type]
            source="fallback",  # type: ignore[arg-type]
        )
        assert r.best_guess_title == ""
        assert isinstance(r.labels, tuple)
        assert isinstance(r.visual_matches, tuple)
        assert r.confidence is ConfidenceTier.MEDIUM
        assert r.source is RecognitionSource.FALLBACK

    def test_is_fallback(self):
        assert RecognitionResult("x", source=RecognitionSource.FALLBACK).is_fallback
        assert RecognitionResult("x", source=RecognitionSource.ERROR).is_fallback
        assert not RecognitionResult("x", source=RecognitionSource.PROVIDER).is_fallback

    def test_has_signal(self):
        assert not RecognitionResult("").has_signal
        assert RecognitionResult("", labels=[Label("Vase", 0.1)]).has_signal
        assert RecognitionResult("", web_entities=[Label("Ming", 0.1)]).has_signal

    def test_display_title_prefers_best_guess(self):
        r = RecognitionResult("Pocket watch", web_entities=[Label("Elgin", 0.9)])
        assert r.display_title("my watch") == "Pocket watch"

    def test_display_title_falls_back_to_first_entity(self):
        r = RecognitionResult("", web_entities=[Label("Elgin", 0.9)])
        assert r.display_title("my watch") == "Elgin"

    def test_display_title_falls_back_to_name(self):
        assert RecognitionResult("").display_title("my watch") == "my watch"
        assert RecognitionResult("").display_title() == ""

    def test_frozen(self):
        r = RecognitionResult("x")
        with pytest.raises(Exception):
            r.best_guess_title = "y"  # type: ignore[misc]


# ── parse_json_response ───────────────────────────────────────────────────────

class TestParseJsonResponse:
    def test_plain_json(self):
        assert parse_json_response('{"best_guess": "Vase"}', "test") == {"best_guess": "Vase"}

    def test_markdown_fenced_json(self):
        raw = '```json\n{"best_guess": "Vase"}\n```'
        assert parse_json_response(raw, "test") == {"best_guess": "Vase"}

    def test_fence_without_closing(self):
        raw = '```\n{"best_guess": "Vase"}'
        assert parse_json_response(raw, "test") == {"best_guess": "Vase"}

    def test_invalid_json_raises_value_error(self):
        with pytest.raises(ValueError, match="JSON parse error"):
            parse_json_response("I think it is a vase", "test")

    def test_non_object_raises_value_error(self):
        with pytest.raises(ValueError, match="expected a JSON object"):
            parse_json_response('["vase"]', "test")

    def test_none_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_json_response(None, "test")  # type: ignore[arg-type]


# ── Category table / names ────────────────────────────────────────────────────

class TestCategoryTerms:
    def test_known_category(self):
        assert category_terms("Watches") == ["vintage watch", "antique timepiece"]

    def test_case_insensitive(self):
        assert category_terms("  jewelry ") == ["antique jewelry", "vintage"]

    def test_unknown_category_is_literal(self):
        assert category_terms("Clocks") == ["Clocks"]

    def test_missing_category(self):
        assert category_terms(None) == []
        assert category_terms("  ") == []

    def test_returns_a_copy(self):
        category_terms("Art").append("oops")
        assert category_terms("Art") == ["antique art", "vintage painting"]

    def test_fallback_terms_order(self):
        assert fallback_terms("Rolex", "Watches") == ["vintage watch", "antique timepiece", "Rolex"]


class TestNameFromImageRef:
    def test_upload_path(self):
        assert name_from_image_ref("uploads/1699999999-pocket_watch.jpg") == "pocket watch"

    def test_url_with_query(self):
        assert name_from_image_ref("https://cdn.example.com/img/12_old-clock.png?w=300") == "old clock"

    def test_plain_name(self):
        assert name_from_image_ref("Brass-Lamp.jpeg") == "brass lamp"

    def test_bytes_and_empty(self):
        assert name_from_image_ref(b"\xff\xd8") is None
        assert name_from_image_ref("") is None
        assert name_from_image_ref(None) is None


# ── build_fallback_result ─────────────────────────────────────────────────────

class TestBuildFallbackResult:
    def test_shape(self):
        r = build_fallback_result("Pocket watch", "Watches", error="timeout")
        assert r.source is RecognitionSource.FALLBACK
        assert r.confidence is ConfidenceTier.LOW
        assert r.visual_matches == ()
        assert r.web_entities == ()
        assert r.best_guess_title == "Pocket watch"
        assert [l.description for l in r.labels] == ["vintage watch", "antique timepiece", "Pocket watch"]
        assert r.error == "timeout"

    def test_no_metadata(self):
        r = build_fallback_result(None, None)
        assert r.source is RecognitionSource.FALLBACK
        assert r.labels == ()
        assert r.best_guess_title == ""

    def test_error_source_when_building_fails(self):
        with patch("recognition.fallback.fallback_terms", side_effect=RuntimeError("bad table")):
            r = build_fallback_result("Pocket watch", "Watches", error="timeout")
        assert r.source is RecognitionSource.ERROR
        assert r.is_fallback
        assert r.visual_matches == ()
        assert "bad table" in r.error
