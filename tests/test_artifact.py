"""
Tests for the project artifact models

Tests for storyboard_studio/artifact.py
"""

import pytest
from pydantic import ValidationError

from storyboard_studio.artifact import (
    ASPECT_RATIOS,
    DEFAULT_STYLE_GUIDE,
    GENRES,
    Character,
    Project,
    Scene,
    Shot,
    StoryboardPanel,
    new_project,
)

from conftest import make_shot


class TestNewProject:
    """Initial project state."""

    def test_defaults(self):
        project = new_project()

        assert project.title == ""
        assert project.genre == GENRES[0] == "Action"
        assert project.max_characters == 2
        assert project.max_scenes == 8
        assert project.style_guide == DEFAULT_STYLE_GUIDE
        assert project.aspect_ratio == ASPECT_RATIOS[0] == "16:9"
        assert project.screenplay == []
        assert project.storyboard == []

    def test_overrides(self):
        project = new_project(title="Night Shift", max_scenes=4)

        assert project.title == "Night Shift"
        assert project.max_scenes == 4


class TestSerialization:
    """camelCase documents and unknown keys."""

    def test_accepts_camel_case_document(self):
        project = Project.model_validate({
            "title": "T",
            "storyConcept": "idea",
            "maxCharacters": 3,
            "sceneSettings": [{"id": "loc-1", "description": "Dock", "imageUrl": "data:image/png;base64,AA=="}],
            "shotlist": [{"sceneNumber": 1, "shotNumber": 2, "description": "d", "shotSize": "Wide"}],
        })

        assert project.story_concept == "idea"
        assert project.max_characters == 3
        assert project.scene_settings[0].image_url.startswith("data:image/png")
        assert project.shotlist[0].key == (1, 2)
        assert project.shotlist[0].shot_size == "Wide"

    def test_dump_by_alias_uses_camel_case(self):
        dumped = new_project(story_concept="idea").model_dump(by_alias=True)

        assert "storyConcept" in dumped
        assert "sceneSettings" in dumped
        assert "story_concept" not in dumped

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            Character(id="char-1", name="Anna", favourite_colour="red")


class TestInvariants:
    """Key uniqueness and reference list hygiene."""

    def test_duplicate_scene_numbers_rejected(self):
        with pytest.raises(ValidationError):
            Project(screenplay=[
                Scene(scene_number=1, title="A", description="a"),
                Scene(scene_number=1, title="B", description="b"),
            ])

    def test_duplicate_shot_keys_rejected(self):
        with pytest.raises(ValidationError):
            Project(shotlist=[make_shot(1, 1), make_shot(1, 1, "again")])

    def test_same_shot_number_in_different_scenes_allowed(self):
        project = Project(shotlist=[make_shot(1, 1), make_shot(2, 1)])

        assert [s.key for s in project.shotlist] == [(1, 1), (2, 1)]

    def test_scene_numbers_start_at_one(self):
        with pytest.raises(ValidationError):
            Scene(scene_number=0, title="A", description="a")

    def test_panel_reference_ids_deduplicated_in_order(self):
        panel = StoryboardPanel(shot=make_shot(1, 1), reference_ids=["b", "a", "b", "c", "a"])

        assert panel.reference_ids == ["b", "a", "c"]
        assert panel.has_override

    def test_empty_reference_list_is_not_an_override(self):
        assert not StoryboardPanel(shot=make_shot(1, 1), reference_ids=[]).has_override
        assert not StoryboardPanel(shot=make_shot(1, 1)).has_override


class TestLookups:
    """find_character / find_location / find_panel."""

    def test_find_helpers(self, storyboard_project):
        assert storyboard_project.find_character("char-bob").name == "Bob"
        assert storyboard_project.find_location("loc-shore").image_url is None
        assert storyboard_project.find_panel((2, 3)).shot.key == (2, 3)
        assert storyboard_project.find_panel([2, 3]) is not None

    def test_missing_returns_none(self, storyboard_project):
        assert storyboard_project.find_character("char-nobody") is None
        assert storyboard_project.find_panel((9, 9)) is None

    def test_shot_key(self):
        assert Shot(scene_number=3, shot_number=4, description="x").key == (3, 4)
