"""
Stages - the fixed pipeline and its completion gates

Each stage has a predicate over the Project saying whether its output is good
enough to unlock the next one. Only the stage the user is currently on is
evaluated: earlier stages count as complete and later ones as incomplete.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, Optional

from .artifact import Project
from .registry import ArtifactRegistry


class Stage(IntEnum):
    PROJECT = 0
    IDEA = 1
    SCREENPLAY = 2
    CHARACTERS = 3
    SHOTLIST = 4
    STORYBOARD = 5
    EXPORT = 6


STAGE_LABELS = {
    Stage.PROJECT: "Project",
    Stage.IDEA: "Idea",
    Stage.SCREENPLAY: "Screenplay",
    Stage.CHARACTERS: "Characters",
    Stage.SHOTLIST: "Shotlist",
    Stage.STORYBOARD: "Storyboard",
    Stage.EXPORT: "Export",
}

# Panels that need an image before the storyboard unlocks export
MIN_STORYBOARD_IMAGES = 6


# ---------- State Evaluation ----------

def stage_criteria_met(stage: Stage, project: Project) -> bool:
    """Whether the project satisfies the unlock criteria of ``stage``."""
    if stage == Stage.PROJECT:
        return bool(project.title.strip())
    if stage == Stage.IDEA:
        return bool(project.story_concept.strip())
    if stage == Stage.SCREENPLAY:
        return len(project.screenplay) > 0
    if stage == Stage.CHARACTERS:
        # Every character needs a portrait; one location with art is enough.
        # No characters at all passes: a story without extracted characters
        # can still move on to the shotlist once a location has art.
        return (
            all(c.image_url for c in project.characters) and
            len(project.scene_settings) > 0 and
            any(s.image_url for s in project.scene_settings)
        )
    if stage == Stage.SHOTLIST:
        return len(project.shotlist) > 0
    if stage == Stage.STORYBOARD:
        return sum(1 for panel in project.storyboard if panel.image_url) >= MIN_STORYBOARD_IMAGES
    return False


def is_stage_complete(stage: Stage, project: Project, current_stage: Stage) -> bool:
    """Completion as seen from ``current_stage``."""
    if stage < current_stage:
        return True
    if stage == current_stage:
        return stage_criteria_met(stage, project)
    return False


def get_completion_status(project: Project, current_stage: Stage) -> Dict[Stage, bool]:
    return {stage: is_stage_complete(stage, project, current_stage) for stage in Stage}


def can_navigate(target: Stage, project: Project, current_stage: Stage) -> bool:
    """Backward moves are always allowed; forward moves need every stage before ``target`` complete."""
    if target <= current_stage:
        return True
    return is_stage_complete(Stage(target - 1), project, current_stage)


# ---------- Navigation ----------

class StageNavigator:
    """Tracks the stage the user occupies and gates moves between stages."""

    def __init__(self, registry: ArtifactRegistry, current_stage: Stage = Stage.PROJECT):
        self.registry = registry
        self.current_stage = current_stage

    def is_complete(self, stage: Optional[Stage] = None) -> bool:
        stage = self.current_stage if stage is None else stage
        return is_stage_complete(stage, self.registry.project, self.current_stage)

    def completion_status(self) -> Dict[Stage, bool]:
        return get_completion_status(self.registry.project, self.current_stage)

    def go_to(self, target: Stage) -> bool:
        target = Stage(target)
        if not can_navigate(target, self.registry.project, self.current_stage):
            return False
        self.current_stage = target
        return True

    def advance(self) -> bool:
        if self.current_stage == Stage.EXPORT:
            return False
        return self.go_to(Stage(self.current_stage + 1))

    def reset_project(self) -> None:
        """Start over with a fresh project on the first stage."""
        self.registry.reset()
        self.current_stage = Stage.PROJECT
