"""
Reference Resolution - which existing artwork grounds a storyboard image

A storyboard panel is generated with a set of reference images taken from the
characters and locations that already have art. The set is either resolved
automatically from the shot description or curated explicitly per panel:

- Automatic: characters whose name appears as a whole word in the shot
  description (case-insensitive) plus every location that has an image.
- Explicit: the panel's ordered ``reference_ids`` list. Ids that no longer
  point at an artifact with an image are skipped.
"""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import Field

from .artifact import Character, Project, SceneSetting, Shot, StoryboardPanel, StrictModel
from .service import ReferenceImage
from .utils import data_url_to_reference


ReferenceKind = Literal["character", "location"]


# ---------- Result Types ----------

class ReferenceEntry(StrictModel):
    """A palette entry: one artifact that can be used as a reference."""
    id: str
    kind: ReferenceKind
    title: str = Field(..., description="Human-readable label shown in the reference palette.")
    image_url: str


class ResolvedReferences(StrictModel):
    """References chosen for one storyboard image call."""
    characters: List[Character] = Field(default_factory=list)
    locations: List[SceneSetting] = Field(default_factory=list)
    order: List[str] = Field(default_factory=list, description="Artifact ids in the order images are supplied.")
    explicit: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.order

    def images(self) -> List[ReferenceImage]:
        """Reference images in supply order, decoded from the artifacts' data URLs."""
        by_id = {c.id: c.image_url for c in self.characters}
        by_id.update({s.id: s.image_url for s in self.locations})
        return [data_url_to_reference(by_id[ref_id]) for ref_id in self.order if by_id.get(ref_id)]


# ---------- Name Matching ----------

def mentions_name(name: str, text: str) -> bool:
    """Whole-word, case-insensitive test for a character name inside free text."""
    if not name or not name.strip():
        return False
    return re.search(rf"\b{re.escape(name)}\b", text or "", re.IGNORECASE) is not None


# ---------- Palette ----------

def _character_title(character: Character) -> str:
    return f"Character: {character.name}"


def _location_title(location: SceneSetting) -> str:
    return f"Scene: {location.description[:20]}..."


def reference_palette(project: Project) -> List[ReferenceEntry]:
    """All characters, then all locations, that currently have an image."""
    entries = [
        ReferenceEntry(id=c.id, kind="character", title=_character_title(c), image_url=c.image_url)
        for c in project.characters if c.image_url
    ]
    entries.extend(
        ReferenceEntry(id=s.id, kind="location", title=_location_title(s), image_url=s.image_url)
        for s in project.scene_settings if s.image_url
    )
    return entries


# ---------- Resolution ----------

def auto_resolve(shot: Shot, project: Project) -> ResolvedReferences:
    """Resolve references from the shot description alone."""
    characters = [
        c for c in project.characters
        if c.image_url and mentions_name(c.name, shot.description)
    ]
    locations = [s for s in project.scene_settings if s.image_url]
    return ResolvedReferences(
        characters=characters,
        locations=locations,
        order=[c.id for c in characters] + [s.id for s in locations],
        explicit=False,
    )


def explicit_resolve(reference_ids: List[str], project: Project) -> ResolvedReferences:
    """Resolve a user-curated id list, silently dropping dangling or imageless ids."""
    characters = []
    locations = []
    order = []
    for ref_id in reference_ids:
        character = project.find_character(ref_id)
        if character is not None and character.image_url:
            characters.append(character)
            order.append(ref_id)
            continue
        location = project.find_location(ref_id)
        if location is not None and location.image_url:
            locations.append(location)
            order.append(ref_id)
    return ResolvedReferences(characters=characters, locations=locations, order=order, explicit=True)


def resolve_panel_references(panel: StoryboardPanel, project: Project) -> ResolvedReferences:
    """Explicit list when the panel has one, automatic resolution otherwise."""
    if panel.has_override:
        return explicit_resolve(panel.reference_ids, project)
    return auto_resolve(panel.shot, project)


def initial_selection(panel: StoryboardPanel, project: Project) -> List[str]:
    """Ids an editor starts from: the stored override, or what auto resolution picks."""
    return resolve_panel_references(panel, project).order


# ---------- Override List Operations ----------

def add_reference(reference_ids: Optional[List[str]], ref_id: str) -> List[str]:
    ids = list(reference_ids or [])
    if ref_id in ids:
        return ids
    ids.append(ref_id)
    return ids


def remove_reference(reference_ids: Optional[List[str]], ref_id: str) -> List[str]:
    return [i for i in (reference_ids or []) if i != ref_id]


def move_reference(reference_ids: Optional[List[str]], ref_id: str, target_id: str) -> List[str]:
    """Move ``ref_id`` to the position currently held by ``target_id``.

    Unknown ids leave the list unchanged, matching a drop outside the list.
    """
    ids = list(reference_ids or [])
    if ref_id not in ids or target_id not in ids:
        return ids
    source_index = ids.index(ref_id)
    target_index = ids.index(target_id)
    item = ids.pop(source_index)
    ids.insert(target_index, item)
    return ids
