"""Tests for the style prompt catalog."""

import random

import pytest

from photobooth.prompts import PromptCatalog, prompt_display_name
from photobooth.prompts.catalog import (
    COPY_IMAGE_STYLE_PROMPT,
    EDIT_MODEL_TRANSFORMATION_PREFIX,
    FALLBACK_MIX_PROMPT,
    RANDOM_SINGLE_STYLE,
    strip_transformation_prefix,
)

GROUPS = {
    "favorites": {"name": "Favorites", "prompts": {}},
    "classics": {"name": "Classics", "prompts": {"popArt": "pop", "watercolor": "wash"}},
    "horror": {"name": "Horror", "prompts": {"vampire": "fangs"}},
    "image-edit-prompts": {"name": "Image Edit", "prompts": {"addHat": "add a hat"}},
}


@pytest.fixture
def catalog() -> PromptCatalog:
    return PromptCatalog(GROUPS, rng=random.Random(7))


def test_display_name():
    assert prompt_display_name("animeKawaii") == "Anime Kawaii"
    assert prompt_display_name("anime1990s") == "Anime1990s"
    assert prompt_display_name("popArt") == "Pop Art"


class TestStylePrompts:

    def test_order(self, catalog):
        keys = list(catalog.style_prompts())
        assert keys[0] == "custom"
        assert keys[-1] == "random"
        assert keys[1:-1] == sorted(keys[1:-1])
        assert catalog.style_prompts()["random"] == RANDOM_SINGLE_STYLE

    def test_empty_catalog(self):
        assert PromptCatalog({}).style_prompts() == {"custom": ""}

    def test_packaged_catalog_loads(self):
        catalog = PromptCatalog.load()
        assert "anime1990s" in catalog.prompts
        assert catalog.default_theme_group_state()["horror"] is False
        assert catalog.default_theme_group_state()["classics"] is True


class TestThemeFiltering:

    def test_enabled_prompts(self, catalog):
        enabled = catalog.enabled_prompts({"classics": True})
        assert set(enabled) == {"custom", "popArt", "watercolor", "random"}

    def test_favorites_and_blocked(self, catalog):
        enabled = catalog.enabled_prompts({"favorites": True, "classics": True}, favorites=["vampire"], blocked=["popArt"])
        assert set(enabled) == {"custom", "vampire", "watercolor", "random"}

    def test_one_of_each_round_robin(self, catalog):
        state = {"classics": True, "horror": True}
        assert catalog.one_of_each(state, 3) == "{pop|fangs|wash}"

    def test_one_of_each_without_groups(self, catalog):
        assert catalog.one_of_each({}, 2) == "{add a hat|pop}"

    def test_one_of_each_nothing_selectable(self):
        assert PromptCatalog({}).one_of_each({}, 3) == ""


class TestRandomSelection:

    def test_random_style_never_picks_workflow_keys(self, catalog):
        for _ in range(20):
            assert catalog.random_style() in ("popArt", "watercolor", "vampire", "addHat")

    def test_random_style_empty(self):
        assert PromptCatalog({}).random_style() == "custom"

    def test_random_mix_cycles(self, catalog):
        mix = catalog.random_mix_prompts(6)
        parts = mix.strip("{}").split("|")
        assert len(parts) == 6
        assert set(parts) == {"pop", "wash", "fangs", "add a hat"}

    def test_random_mix_fallback(self):
        assert PromptCatalog({}).random_mix_prompts(3) == FALLBACK_MIX_PROMPT

    def test_generate_random_prompts_distinct(self, catalog):
        parts = catalog.generate_random_prompts(10).strip("{}").split("|")
        assert sorted(parts) == ["add a hat", "fangs", "pop", "wash"]


class TestEditModels:

    def test_edit_prompts(self, catalog):
        assert catalog.edit_prompt_keys() == ["addHat"]
        assert catalog.is_edit_prompt("addHat")
        assert not catalog.is_edit_prompt("popArt")

    def test_prompt_for_edit_model(self, catalog):
        assert catalog.prompt_for_edit_model("addHat") == "add a hat"
        assert catalog.prompt_for_edit_model("popArt") == EDIT_MODEL_TRANSFORMATION_PREFIX + "pop"
        assert catalog.prompt_for_edit_model("copyImageStyle") == COPY_IMAGE_STYLE_PROMPT
        assert catalog.prompt_for_edit_model("unknown") is None

    def test_key_lookup_ignores_prefix(self, catalog):
        assert catalog.key_for_prompt(EDIT_MODEL_TRANSFORMATION_PREFIX + "wash") == "watercolor"
        assert catalog.key_for_prompt("nothing") is None
        assert strip_transformation_prefix("plain") == "plain"


class TestPromptRoutes:

    def test_list(self, client):
        data = client.get("/api/prompts").json()
        assert next(iter(data)) == "custom"
        assert "anime1990s" in data

    def test_themes(self, client):
        data = client.get("/api/prompts/themes").json()
        assert data["groups"]["classics"]["name"] == "Classics"
        assert data["defaultState"]["favorites"] is False

    def test_edit(self, client):
        assert "addSunglasses" in client.get("/api/prompts/edit").json()

    def test_random_modes(self, client):
        single = client.get("/api/prompts/random").json()
        assert single["prompt"]
        mix = client.get("/api/prompts/random?mode=randomMix&count=3").json()
        assert mix["prompt"].startswith("{")
        each = client.get("/api/prompts/random?mode=oneOfEach&count=2").json()
        assert each["prompt"].count("|") == 1

    def test_random_validation(self, client):
        assert client.get("/api/prompts/random?count=0").status_code == 400
        assert client.get("/api/prompts/random?mode=everything").status_code == 400

    def test_single_prompt(self, client):
        data = client.get("/api/prompts/animeKawaii").json()
        assert data["displayName"] == "Anime Kawaii"
        assert client.get("/api/prompts/notAStyle").status_code == 404
