"""
Tests for reference resolution

Tests for storyboard_studio/references.py
"""

import pytest

from storyboard_studio.artifact import Character, StoryboardPanel
from storyboard_studio.references import (
    add_reference,
    auto_resolve,
    initial_selection,
    mentions_name,
    move_reference,
    reference_palette,
    remove_reference,
    resolve_panel_references,
)

from conftest import make_shot, png_data_url


class TestNameMatching:
    """Whole-word, case-insensitive name detection."""

    @pytest.mark.parametrize("name,text,expected", [
        ("Anna", "Anna opens the door", True),
        ("Anna", "anna opens the door", True),
        ("Anna", "Close on ANNA.", True),
        ("Anna", "Hannah opens the door", False),
        ("Anna", "Annabel opens the door", False),
        ("Dr. Reyes", "Dr. Reyes checks the chart", True),
        ("Dr. Reyes", "Dr Reyes checks the chart", False),
        ("Anna", "", False),
        ("", "Anna opens the door", False),
        ("  ", "Anna opens the door", False),
    ])
    def test_mentions_name(self, name, text, expected):
        assert mentions_name(name, text) is expected


class TestAutomaticResolution:
    """References picked from the shot description."""

    def test_characters_in_registry_order_then_locations(self, sample_project):
        shot = make_shot(1, 1, "Bob hands the radio to Anna")

        resolved = auto_resolve(shot, sample_project)

        assert [c.id for c in resolved.characters] == ["char-anna", "char-bob"]
        assert [s.id for s in resolved.locations] == ["loc-lamp"]
        assert resolved.order == ["char-anna", "char-bob", "loc-lamp"]
        assert not resolved.explicit

    def test_character_without_image_skipped(self, sample_project):
        resolved = auto_resolve(make_shot(1, 1, "Cara watches the gulls"), sample_project)

        assert resolved.characters == []
        assert resolved.order == ["loc-lamp"]

    def test_substring_does_not_match(self, sample_project):
        resolved = auto_resolve(make_shot(1, 1, "Bobby runs"), sample_project)

        assert resolved.characters == []

    def test_identical_names_both_match(self, sample_project):
        twin = Character(id="char-anna-2", name="Anna", image_url=png_data_url((9, 9, 9)))
        project = sample_project.model_copy(update={"characters": sample_project.characters + [twin]})

        resolved = auto_resolve(make_shot(1, 1, "Anna waves"), project)

        assert [c.id for c in resolved.characters] == ["char-anna", "char-anna-2"]

    def test_no_images_gives_empty_set(self, sample_project):
        project = sample_project.model_copy(update={"characters": [], "scene_settings": []})

        assert auto_resolve(make_shot(1, 1, "Anna"), project).is_empty


class TestExplicitResolution:
    """Panel override lists."""

    def test_override_bypasses_name_matching(self, sample_project):
        panel = StoryboardPanel(shot=make_shot(1, 1, "Anna alone"), reference_ids=["loc-lamp", "char-bob"])

        resolved = resolve_panel_references(panel, sample_project)

        assert resolved.explicit
        assert resolved.order == ["loc-lamp", "char-bob"]
        assert [c.name for c in resolved.characters] == ["Bob"]

    def test_dangling_and_imageless_ids_skipped(self, sample_project):
        panel = StoryboardPanel(
            shot=make_shot(1, 1),
            reference_ids=["char-deleted", "char-cara", "loc-shore", "char-anna"],
        )

        resolved = resolve_panel_references(panel, sample_project)

        assert resolved.order == ["char-anna"]

    def test_images_follow_supply_order(self, sample_project):
        panel = StoryboardPanel(shot=make_shot(1, 1), reference_ids=["loc-lamp", "char-anna"])

        images = resolve_panel_references(panel, sample_project).images()

        assert [image.to_data_url() for image in images] == [
            sample_project.find_location("loc-lamp").image_url,
            sample_project.find_character("char-anna").image_url,
        ]

    def test_initial_selection_falls_back_to_auto(self, sample_project):
        panel = StoryboardPanel(shot=make_shot(1, 1, "Bob listens"))

        assert initial_selection(panel, sample_project) == ["char-bob", "loc-lamp"]


class TestOverrideListOperations:
    """Pure edits of an override list."""

    def test_add_is_noop_for_present_id(self):
        assert add_reference(["a", "b"], "a") == ["a", "b"]
        assert add_reference(None, "a") == ["a"]

    def test_remove_then_readd_appends(self):
        ids = remove_reference(["a", "b", "c"], "a")
        assert ids == ["b", "c"]
        assert add_reference(ids, "a") == ["b", "c", "a"]

    @pytest.mark.parametrize("ref_id,target_id,expected", [
        ("c", "a", ["c", "a", "b"]),
        ("a", "c", ["b", "c", "a"]),
        ("b", "b", ["a", "b", "c"]),
        ("x", "a", ["a", "b", "c"]),
    ])
    def test_move(self, ref_id, target_id, expected):
        assert move_reference(["a", "b", "c"], ref_id, target_id) == expected

    def test_operations_do_not_mutate_input(self):
        ids = ["a", "b"]
        add_reference(ids, "c")
        remove_reference(ids, "a")
        move_reference(ids, "b", "a")

        assert ids == ["a", "b"]


class TestPalette:
    """Reference palette entries."""

    def test_only_artifacts_with_images(self, sample_project):
        palette = reference_palette(sample_project)

        assert [(e.id, e.kind) for e in palette] == [
            ("char-anna", "character"),
            ("char-bob", "character"),
            ("loc-lamp", "location"),
        ]
        assert palette[0].title == "Character: Anna"
        assert palette[2].title == "Scene: A lighthouse lamp ro..."
