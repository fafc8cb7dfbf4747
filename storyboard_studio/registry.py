"""
Artifact Registry - the single owned Project aggregate

Every mutation is expressed as a function from the current Project to a new
Project and applied through ``ArtifactRegistry.update``. Functions always
receive the snapshot current at the moment they commit, so two operations
that interleave across an ``await`` never overwrite each other's fields.
Entities are never modified in place; updated copies replace them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from .artifact import Character, Project, Scene, SceneSetting, Shot, ShotKey, StoryboardPanel, new_project
from .references import add_reference, move_reference, remove_reference


ProjectUpdate = Callable[[Project], Project]


class UnknownArtifactError(KeyError):
    """Raised when an update names a character, location, scene, shot or panel that does not exist."""


class ProjectImportError(ValueError):
    """Raised when a serialized project cannot be imported. The registry is left unchanged."""


# ---------- Pure Helpers ----------

def _check_fields(model_cls, changes: dict) -> None:
    unknown = [name for name in changes if name not in model_cls.model_fields]
    if unknown:
        raise ValueError(f"Unknown {model_cls.__name__} field(s): {', '.join(unknown)}")


def _check_key_unchanged(changes: dict, current: dict, label: str) -> None:
    """Keys are stable once assigned; an edit may repeat them but not change them."""
    changed = [name for name, value in current.items() if name in changes and changes[name] != value]
    if changed:
        raise ValueError(f"Cannot change {', '.join(changed)} of {label}")


def _replace_where(items: list, predicate: Callable, changes: dict, label: str) -> list:
    """Return a new list where the first item matching ``predicate`` is copied with ``changes``."""
    for index, item in enumerate(items):
        if predicate(item):
            updated = list(items)
            updated[index] = item.model_copy(update=changes)
            return updated
    raise UnknownArtifactError(label)


def resync_panels(shots: List[Shot], panels: List[StoryboardPanel]) -> List[StoryboardPanel]:
    """Reconcile storyboard panels with a shotlist by position.

    Panels at indices shared by both lists keep their image, prompt and
    reference list and take the shot at that index. Extra panels are dropped;
    extra shots get fresh panels.
    """
    resynced = []
    for index, shot in enumerate(shots):
        if index < len(panels):
            panel = panels[index]
            # An in-flight generation commits by shot key; a new key will never be cleared
            busy = panel.is_generating and panel.shot.key == shot.key
            resynced.append(panel.model_copy(update={"shot": shot, "is_generating": busy}))
        else:
            resynced.append(StoryboardPanel(shot=shot))
    return resynced


def parse_project(payload: Union[str, bytes, dict]) -> Project:
    """Validate a serialized project document.

    Raises:
        ProjectImportError: If the payload is not valid JSON or not a valid project
    """
    try:
        if isinstance(payload, dict):
            project = Project.model_validate(payload)
        else:
            project = Project.model_validate_json(payload)
    except (ValidationError, json.JSONDecodeError, TypeError) as e:
        raise ProjectImportError(f"Failed to import project. The file may be corrupt: {e}") from e

    # A snapshot has no generation calls in flight
    return project.model_copy(update={
        "characters": [c.model_copy(update={"is_generating": False}) for c in project.characters],
        "scene_settings": [s.model_copy(update={"is_generating": False}) for s in project.scene_settings],
        "storyboard": [p.model_copy(update={"is_generating": False}) for p in project.storyboard],
    })


# ---------- Registry ----------

class ArtifactRegistry:
    """Owner of the current Project snapshot."""

    def __init__(self, project: Optional[Project] = None):
        self._project = project if project is not None else new_project()
        self._listeners: List[Callable[[Project], None]] = []

    @property
    def project(self) -> Project:
        return self._project

    def subscribe(self, listener: Callable[[Project], None]) -> None:
        """Call ``listener`` with every newly committed snapshot."""
        self._listeners.append(listener)

    def update(self, fn: ProjectUpdate) -> Project:
        """Apply ``fn`` to the latest snapshot and commit its result.

        ``model_copy`` does not validate, so a changed snapshot is checked
        against the full model before it is committed.

        Raises:
            TypeError: If ``fn`` does not return a Project
            ValueError: If the result breaks a field constraint or key uniqueness
        """
        updated = fn(self._project)
        if not isinstance(updated, Project):
            raise TypeError(f"Update function must return a Project, got {type(updated).__name__}")
        if updated is not self._project:
            Project.model_validate(updated.model_dump())
        self._project = updated
        for listener in self._listeners:
            listener(updated)
        return updated

    # ----- Project setup -----

    def set_fields(self, **changes) -> Project:
        """Update top-level project fields such as title, genre or story_concept."""
        _check_fields(Project, changes)
        return self.update(lambda p: p.model_copy(update=changes))

    def reset(self) -> Project:
        return self.update(lambda p: new_project())

    # ----- Screenplay -----

    def replace_screenplay(self, scenes: List[Scene]) -> Project:
        return self.update(lambda p: p.model_copy(update={"screenplay": list(scenes)}))

    def update_scene(self, scene_number: int, **changes) -> Project:
        _check_fields(Scene, changes)
        _check_key_unchanged(changes, {"scene_number": scene_number}, f"scene {scene_number}")
        return self.update(lambda p: p.model_copy(update={
            "screenplay": _replace_where(
                p.screenplay, lambda s: s.scene_number == scene_number, changes, f"scene {scene_number}"
            )
        }))

    # ----- Characters -----

    def replace_characters(self, characters: List[Character]) -> Project:
        return self.update(lambda p: p.model_copy(update={"characters": list(characters)}))

    def add_character(self, character: Character) -> Project:
        return self.update(lambda p: p.model_copy(update={"characters": p.characters + [character]}))

    def update_character(self, character_id: str, **changes) -> Project:
        _check_fields(Character, changes)
        return self.update(lambda p: p.model_copy(update={
            "characters": _replace_where(p.characters, lambda c: c.id == character_id, changes, character_id)
        }))

    def delete_character(self, character_id: str) -> Project:
        # Shots and panels keep any textual mention or dangling reference id
        return self.update(lambda p: p.model_copy(update={
            "characters": [c for c in p.characters if c.id != character_id]
        }))

    # ----- Locations -----

    def replace_locations(self, locations: List[SceneSetting]) -> Project:
        return self.update(lambda p: p.model_copy(update={"scene_settings": list(locations)}))

    def add_location(self, location: SceneSetting) -> Project:
        return self.update(lambda p: p.model_copy(update={"scene_settings": p.scene_settings + [location]}))

    def update_location(self, location_id: str, **changes) -> Project:
        _check_fields(SceneSetting, changes)
        return self.update(lambda p: p.model_copy(update={
            "scene_settings": _replace_where(p.scene_settings, lambda s: s.id == location_id, changes, location_id)
        }))

    def delete_location(self, location_id: str) -> Project:
        return self.update(lambda p: p.model_copy(update={
            "scene_settings": [s for s in p.scene_settings if s.id != location_id]
        }))

    # ----- Shotlist -----

    def replace_shotlist(self, shots: List[Shot]) -> Project:
        """Replace every shot and resynchronize the storyboard to match."""
        shots = list(shots)
        return self.update(lambda p: p.model_copy(update={
            "shotlist": shots,
            "storyboard": resync_panels(shots, p.storyboard),
        }))

    def update_shot(self, key: ShotKey, **changes) -> Project:
        _check_fields(Shot, changes)
        key = tuple(key)
        _check_key_unchanged(changes, {"scene_number": key[0], "shot_number": key[1]}, f"shot {key}")
        return self.update(lambda p: p.model_copy(update={
            "shotlist": _replace_where(p.shotlist, lambda s: s.key == key, changes, f"shot {key}")
        }))

    # ----- Storyboard -----

    def sync_panels(self) -> Project:
        """Resynchronize panels when their count no longer matches the shotlist."""
        def _sync(p: Project) -> Project:
            if not p.shotlist or len(p.storyboard) == len(p.shotlist):
                return p
            return p.model_copy(update={"storyboard": resync_panels(p.shotlist, p.storyboard)})
        return self.update(_sync)

    def update_panel(self, key: ShotKey, **changes) -> Project:
        _check_fields(StoryboardPanel, changes)
        if changes.get("reference_ids") is not None:
            changes["reference_ids"] = list(dict.fromkeys(changes["reference_ids"]))
        key = tuple(key)
        if changes.get("shot") is not None:
            shot = Shot.model_validate(changes["shot"])
            if shot.key != key:
                raise ValueError(f"Panel {key} cannot hold shot {shot.key}; panels stay paired with their shot")
            changes["shot"] = shot
        return self.update(lambda p: p.model_copy(update={
            "storyboard": _replace_where(p.storyboard, lambda panel: panel.shot.key == key, changes, f"panel {key}")
        }))

    def save_panel(
        self,
        key: ShotKey,
        shot: Optional[Shot] = None,
        prompt: Optional[str] = None,
        reference_ids: Optional[List[str]] = None,
    ) -> Project:
        """Persist panel edits without generating a new image."""
        changes = {}
        if shot is not None:
            changes["shot"] = shot
        if prompt is not None:
            changes["prompt"] = prompt
        if reference_ids is not None:
            changes["reference_ids"] = reference_ids
        return self.update_panel(key, **changes)

    def _edit_panel_references(self, key: ShotKey, edit: Callable[[Optional[List[str]]], List[str]]) -> Project:
        key = tuple(key)

        def _apply(p: Project) -> Project:
            panel = p.find_panel(key)
            if panel is None:
                raise UnknownArtifactError(f"panel {key}")
            return p.model_copy(update={"storyboard": _replace_where(
                p.storyboard, lambda candidate: candidate.shot.key == key,
                {"reference_ids": edit(panel.reference_ids)}, f"panel {key}",
            )})
        return self.update(_apply)

    def add_panel_reference(self, key: ShotKey, ref_id: str) -> Project:
        return self._edit_panel_references(key, lambda ids: add_reference(ids, ref_id))

    def remove_panel_reference(self, key: ShotKey, ref_id: str) -> Project:
        return self._edit_panel_references(key, lambda ids: remove_reference(ids, ref_id))

    def move_panel_reference(self, key: ShotKey, ref_id: str, target_id: str) -> Project:
        return self._edit_panel_references(key, lambda ids: move_reference(ids, ref_id, target_id))

    def reset_panel_references(self, key: ShotKey) -> Project:
        """Drop the override list so the panel goes back to automatic resolution."""
        return self._edit_panel_references(key, lambda ids: None)

    # ----- Import / Export -----

    def export_json(self) -> str:
        return self._project.model_dump_json(by_alias=True, indent=2)

    def import_json(self, payload: Union[str, bytes, dict]) -> Project:
        """Replace the whole project with a serialized one, or raise and change nothing."""
        project = parse_project(payload)
        return self.update(lambda p: project)

    def load_checkpoint(self, path: Union[str, Path]) -> Project:
        return self.import_json(Path(path).read_text(encoding="utf-8"))
