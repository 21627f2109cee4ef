# ABOUTME: Unit tests for the read-only lorebook content store.
# ABOUTME: Covers lookups, copy isolation, keyword search and JSON lorebook loading.

import json

import pytest

from agentic_rpg.persistence.content_store import LorebookContentStore
from agentic_rpg.persistence.exceptions import ContentNotFound, InvalidContentFile


@pytest.fixture
def lorebook() -> LorebookContentStore:
    return LorebookContentStore.with_starter_content()


class TestLookups:
    """Test suite for get_* lookups"""

    def test_get_scene_returns_copy(self, lorebook):
        scene = lorebook.get_scene("tavern_start")
        scene.npcs.clear()
        assert len(lorebook.get_scene("tavern_start").npcs) == 2

    def test_scene_npcs_are_indexed(self, lorebook):
        assert lorebook.get_npc("thorin_barkeep").name == "Thorin"

    def test_location_lookup(self, lorebook):
        assert lorebook.get_location("old_forest").name == "The Old Forest"

    @pytest.mark.parametrize("method,key", [
        ("get_scene", "nowhere"),
        ("get_location", "nowhere"),
        ("get_npc", "nobody"),
    ])
    def test_missing_entries_raise(self, lorebook, method, key):
        with pytest.raises(ContentNotFound):
            getattr(lorebook, method)(key)

    def test_scene_ids(self, lorebook):
        assert lorebook.scene_ids() == ["tavern_start", "forest_path", "tavern_cellar"]
        assert lorebook.has_scene("forest_path")


class TestSearch:
    """Test suite for keyword search"""

    def test_matches_tags_and_keywords_case_insensitively(self, lorebook):
        matches = lorebook.search_by_keywords(["TAVERN", "brawler"])
        assert [scene.id for scene in matches.scenes] == ["tavern_start"]
        assert [loc.id for loc in matches.locations] == ["crossed_swords_tavern"]
        assert [npc.id for npc in matches.npcs] == ["rowdy_patron"]

    def test_location_keywords(self, lorebook):
        matches = lorebook.search_by_keywords(["woods"])
        assert [loc.id for loc in matches.locations] == ["old_forest"]
        assert matches.scenes == []

    def test_empty_search(self, lorebook):
        assert lorebook.search_by_keywords([]).is_empty()
        assert lorebook.search_by_keywords(["dragons"]).is_empty()


class TestJsonLorebook:
    """Test suite for loading a lorebook file"""

    def test_load_file(self, tmp_path):
        path = tmp_path / "lorebook.json"
        path.write_text(json.dumps({
            "scenes": [{"id": "crypt", "title": "The Crypt",
                        "npcs": [{"id": "ghoul", "name": "Ghoul", "disposition": "hostile"}]}],
            "locations": [{"id": "graveyard", "name": "Graveyard"}],
            "npcs": [{"id": "priest", "name": "Father Aldric"}],
        }))

        store = LorebookContentStore.from_json_file(path)

        assert store.get_scene("crypt").title == "The Crypt"
        assert store.get_npc("ghoul").disposition == "hostile"
        assert store.get_npc("priest").name == "Father Aldric"
        assert store.get_location("graveyard").name == "Graveyard"

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidContentFile):
            LorebookContentStore.from_json_file(tmp_path / "absent.json")

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]", '{"scenes": [{"title": "no id"}]}'])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "lorebook.json"
        path.write_text(content)
        with pytest.raises(InvalidContentFile):
            LorebookContentStore.from_json_file(path)
