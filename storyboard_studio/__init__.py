"""
Storyboard Studio Core Module

This module provides the generation pipeline behind a storyboard project:
the project artifact and its registry, stage gating, reference resolution for
panel images, and the job runner that drives generation calls.
"""

from .artifact import (
    Project,
    Scene,
    Dialogue,
    Character,
    SceneSetting,
    Shot,
    StoryboardPanel,
    StrictModel,
    new_project
)

from .registry import (
    ArtifactRegistry,
    UnknownArtifactError,
    ProjectImportError,
    resync_panels
)

from .stages import (
    Stage,
    StageNavigator,
    is_stage_complete,
    get_completion_status
)

from .references import (
    ReferenceEntry,
    ResolvedReferences,
    reference_palette,
    resolve_panel_references
)

from .service import (
    GenerationService,
    ReferenceImage,
    CharacterProfile,
    ScreenplayResult,
    StoryboardImageResult
)

from .runner import (
    GenerationJobRunner,
    GenerationFailure,
    StageGenerationError,
    CancellationToken
)

from .config import Settings

__all__ = [
    # Core models
    "Project",
    "Scene",
    "Dialogue",
    "Character",
    "SceneSetting",
    "Shot",
    "StoryboardPanel",
    "StrictModel",
    "new_project",

    # Registry
    "ArtifactRegistry",
    "UnknownArtifactError",
    "ProjectImportError",
    "resync_panels",

    # Stages
    "Stage",
    "StageNavigator",
    "is_stage_complete",
    "get_completion_status",

    # References
    "ReferenceEntry",
    "ResolvedReferences",
    "reference_palette",
    "resolve_panel_references",

    # Service boundary
    "GenerationService",
    "ReferenceImage",
    "CharacterProfile",
    "ScreenplayResult",
    "StoryboardImageResult",

    # Runner
    "GenerationJobRunner",
    "GenerationFailure",
    "StageGenerationError",
    "CancellationToken",

    # Config
    "Settings"
]
