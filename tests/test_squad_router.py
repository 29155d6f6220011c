"""Unit tests for squad and awareness-stage routing."""

from unittest.mock import AsyncMock, patch

import pytest

from madison.models.master import MasterDocument
from madison.services.squad_router import (
    SQUAD_DEFINITIONS,
    AwarenessStage,
    Squad,
    build_master_context,
    build_strategy_directives,
    detect_awareness_stage,
    load_master_context,
    route,
    score_brief,
    squad_from_scores,
)


class TestRoutePrecedence:
    """Override, then content type, then keywords."""

    def test_style_override_wins(self):
        """An explicit override beats both content type and brief keywords."""
        strategy = route("ad_copy", "urgent limited launch", style_override="direct")
        assert strategy.copy_squad == Squad.SCIENTISTS
        assert strategy.reason == "style_override"

    def test_squad_name_is_accepted_as_override(self):
        """Squad names work as overrides with or without the THE_ prefix."""
        assert route(None, "", style_override="disruptors").copy_squad == Squad.DISRUPTORS
        assert route(None, "", style_override="THE_STORYTELLERS").copy_squad == Squad.STORYTELLERS

    def test_unknown_override_falls_through(self):
        """An unrecognized override is ignored."""
        strategy = route("product_description", "", style_override="baroque")
        assert strategy.copy_squad == Squad.SCIENTISTS
        assert strategy.reason == "content_type"

    @pytest.mark.parametrize(
        "content_type, squad",
        [
            ("product_description", Squad.SCIENTISTS),
            ("instagram_caption", Squad.STORYTELLERS),
            ("ad_copy", Squad.DISRUPTORS),
        ],
    )
    def test_content_type_mapping(self, content_type, squad):
        """Known content types map directly to a squad."""
        assert route(content_type, "").copy_squad == squad

    def test_urgent_launch_brief_routes_to_disruptors(self):
        """Keyword scoring picks Disruptors and the stage defaults to solution_aware."""
        strategy = route(None, "Write an urgent limited-time launch announcement")
        assert strategy.copy_squad == Squad.DISRUPTORS
        assert strategy.scores[Squad.DISRUPTORS.value] == 3
        assert strategy.awareness_stage == AwarenessStage.SOLUTION_AWARE
        assert strategy.reason == "keywords"

    def test_empty_brief_uses_default(self):
        """No hits at all lands on Storytellers."""
        strategy = route(None, "")
        assert strategy.copy_squad == Squad.STORYTELLERS
        assert strategy.reason == "default"

    def test_routing_is_deterministic(self):
        """The same inputs always produce the same strategy."""
        args = (None, "Tell the story of a candle for a rainy evening", None)
        assert route(*args) == route(*args)

    def test_scientists_pair_with_minimalist_visuals(self):
        """The visual squad for Scientists is the Minimalists."""
        assert route("technical_spec", "").visual_squad == Squad.MINIMALISTS
        assert route("brand_story", "").visual_squad == Squad.STORYTELLERS


class TestScoring:
    """Keyword scoring and tie-breaking."""

    def test_ties_resolve_to_storytellers(self):
        """Equal scores never pick Disruptors or Scientists."""
        assert squad_from_scores({Squad.SCIENTISTS: 2, Squad.STORYTELLERS: 2, Squad.DISRUPTORS: 2}) == Squad.STORYTELLERS

    def test_disruptors_need_strict_lead(self):
        """Disruptors tied with Scientists fall back to the Scientists comparison."""
        assert squad_from_scores({Squad.SCIENTISTS: 2, Squad.STORYTELLERS: 0, Squad.DISRUPTORS: 2}) == Squad.SCIENTISTS

    def test_scientists_beat_storytellers_strictly(self):
        """Scientists win only when strictly ahead of Storytellers."""
        assert squad_from_scores({Squad.SCIENTISTS: 1, Squad.STORYTELLERS: 0, Squad.DISRUPTORS: 0}) == Squad.SCIENTISTS
        assert squad_from_scores({Squad.SCIENTISTS: 1, Squad.STORYTELLERS: 1, Squad.DISRUPTORS: 0}) == Squad.STORYTELLERS

    def test_score_brief_counts_substring_hits(self):
        """Each keyword counts once when it appears anywhere in the brief."""
        scores = score_brief("Technical specs with clinical proof")
        assert scores[Squad.SCIENTISTS] == 4


class TestAwarenessStage:
    """Second keyword scan for the funnel stage."""

    @pytest.mark.parametrize(
        "brief, stage",
        [
            ("Introduce our house to new readers", AwarenessStage.UNAWARE),
            ("Speak to the struggle of dry winter skin", AwarenessStage.PROBLEM_AWARE),
            ("Compare us to the alternative", AwarenessStage.SOLUTION_AWARE),
            ("Email for customers who want to restock", AwarenessStage.PRODUCT_AWARE),
            ("They are ready to purchase", AwarenessStage.MOST_AWARE),
            ("A quiet note about cedar", AwarenessStage.SOLUTION_AWARE),
        ],
    )
    def test_detect_awareness_stage(self, brief, stage):
        """The first stage with a keyword hit wins; no hit means solution_aware."""
        assert detect_awareness_stage(brief) == stage


class TestMasterContext:
    """Persona section rendering and failure semantics."""

    def test_missing_documents_render_empty_section(self):
        """No master documents yields an empty persona section."""
        strategy = route("ad_copy", "")
        assert build_master_context(strategy, []) == ""

    def test_primary_master_is_labelled(self):
        """The primary master is marked as such in the section."""
        strategy = route("ad_copy", "")
        document = MasterDocument(
            master_name=strategy.primary_master,
            squad=strategy.copy_squad.value,
            full_content="Write like the reader has ten seconds.",
        )
        text = build_master_context(strategy, [document])
        assert f"PRIMARY MASTER: {strategy.primary_master}" in text
        assert "ten seconds" in text

    def test_strategy_directives_list_forbidden_language(self):
        """Squad forbidden language and stage steps are rendered."""
        strategy = route("product_description", "")
        text = build_strategy_directives(strategy)
        for term in SQUAD_DEFINITIONS[Squad.SCIENTISTS].forbidden_language:
            assert term in text
        assert "Reader awareness stage: solution_aware" in text

    @pytest.mark.asyncio
    async def test_load_master_context_survives_store_failure(self):
        """A failing masters lookup yields an empty section instead of an error."""
        strategy = route("ad_copy", "")
        with patch(
            "madison.services.knowledge_store.get_records",
            new=AsyncMock(side_effect=RuntimeError("connection refused")),
        ):
            assert await load_master_context(strategy) == ""
