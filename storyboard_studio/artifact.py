from __future__ import annotations

from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


# ---------- Option Constants ----------

GENRES = [
    "Action", "Animation", "Comedy", "Commercial", "Documentary", "Drama",
    "Educational", "Fantasy", "Horror", "Music Video", "Mystery", "Romance",
    "Science Fiction", "Thriller",
]

ART_STYLES = [
    "3D Pixar/Disney style",
    "Anime style",
    "Semi-realistic",
    "Cute Cartoon",
]

ASPECT_RATIOS = ["16:9", "9:16", "4:3", "3:4", "1:1"]

MAX_CHARACTERS_OPTIONS = [1, 2, 3, 4, 5]
MAX_SCENES_OPTIONS = [4, 6, 8, 10, 12]

DEFAULT_STYLE_GUIDE = "cinematic, hyper-realistic, high detail, 4k"


# ---------- Base (forbid unknown keys) ----------

class StrictModel(BaseModel):
    """Base model that rejects unknown fields to keep snapshots and outputs clean."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


ShotKey = Tuple[int, int]


# ---------- Screenplay ----------

class Dialogue(StrictModel):
    """A single spoken line."""
    character: str = Field(..., description="The name of the character speaking.")
    line: str = Field(..., description="The dialogue spoken by the character.")


class Scene(StrictModel):
    """One numbered scene of the screenplay."""
    scene_number: int = Field(..., alias="sceneNumber", ge=1, description="The sequential number of the scene.")
    title: str = Field(..., description="A short, descriptive title for the scene (e.g., INT. COFFEE SHOP - DAY).")
    description: str = Field(..., description="A detailed paragraph describing the setting, characters, and action in the scene.")
    dialogue: List[Dialogue] = Field(default_factory=list, description="Ordered dialogue lines spoken in the scene.")
    prompt: Optional[str] = Field(None, description="Prompt that produced the screenplay this scene belongs to.")


# ---------- Characters and Locations ----------

class Character(StrictModel):
    """A character extracted from the screenplay, with an optional portrait."""
    id: str = Field(..., description="Opaque identifier assigned at extraction time.")
    name: str = Field(..., description="Character name as it appears in the screenplay.")
    description: str = Field("", description="Concise one-sentence description based on actions and dialogue.")
    age: str = ""
    personality: str = ""
    appearance: str = ""
    hair: str = ""
    skin: str = ""
    outfit: str = ""
    accessories: str = ""
    image_url: Optional[str] = Field(None, alias="imageUrl", description="Generated portrait as a data URL.")
    reference_image: Optional[str] = Field(None, alias="referenceImage", description="User-supplied reference image as a data URL.")
    is_generating: bool = Field(False, alias="isGenerating")


class SceneSetting(StrictModel):
    """A location used by one or more scenes."""
    id: str = Field(..., description="Opaque identifier assigned at extraction time.")
    description: str = Field(..., description="Visual description of the location.")
    image_url: Optional[str] = Field(None, alias="imageUrl", description="Generated location art as a data URL.")
    reference_image: Optional[str] = Field(None, alias="referenceImage", description="User-supplied reference image as a data URL.")
    is_generating: bool = Field(False, alias="isGenerating")


# ---------- Shotlist ----------

class Shot(StrictModel):
    """A single camera shot, keyed by (scene_number, shot_number)."""
    scene_number: int = Field(..., alias="sceneNumber", ge=1)
    shot_number: int = Field(..., alias="shotNumber", ge=1)
    description: str = Field(..., description="What the camera sees: subjects, action, and framing.")
    ert: str = Field("", description="Estimated Run Time, e.g., '3s'")
    shot_size: str = Field("", alias="shotSize", description="e.g., Wide, Medium, Close-up")
    perspective: str = Field("", description="e.g., Eye-level, High-angle")
    movement: str = Field("", description="e.g., Static, Pan, Dolly")
    equipment: str = Field("", description="e.g., Tripod, Drone, Steadicam")
    lens: str = Field("", description="e.g., 24mm, 50mm, 85mm")
    aspect_ratio: str = Field("", alias="aspectRatio", description="e.g., '16:9'")
    notes: str = ""
    vo: str = Field("", description="Voice-over text, if any.")
    sfx: str = Field("", description="Sound effect text, if any.")
    lighting: str = ""
    music: str = ""
    dialogue: List[Dialogue] = Field(default_factory=list)

    @property
    def key(self) -> ShotKey:
        return (self.scene_number, self.shot_number)


# ---------- Storyboard ----------

class StoryboardPanel(StrictModel):
    """One storyboard frame, paired 1:1 with a shot."""
    shot: Shot
    image_url: Optional[str] = Field(None, alias="imageUrl", description="Generated panel image as a data URL.")
    prompt: Optional[str] = Field(None, description="Prompt that produced the current image.")
    is_generating: bool = Field(False, alias="isGenerating")
    reference_ids: Optional[List[str]] = Field(
        None,
        alias="referenceImageIds",
        description="User-curated character/location ids supplied as references, in order.",
    )

    @field_validator("reference_ids")
    @classmethod
    def _dedupe_reference_ids(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return list(dict.fromkeys(value))

    @property
    def has_override(self) -> bool:
        return bool(self.reference_ids)


# ---------- Main Artifact ----------

class Project(StrictModel):
    """Root aggregate owning every artifact of one storyboard project."""
    title: str = Field("", description="Working title of the project.")
    genre: str = Field(GENRES[0], description="Genre that steers the screenplay.")
    max_characters: int = Field(2, alias="maxCharacters", ge=1)
    max_scenes: int = Field(8, alias="maxScenes", ge=1)
    story_concept: str = Field("", alias="storyConcept", description="Free-text story idea the screenplay is written from.")
    screenplay: List[Scene] = Field(default_factory=list)
    characters: List[Character] = Field(default_factory=list)
    scene_settings: List[SceneSetting] = Field(default_factory=list, alias="sceneSettings")
    shotlist: List[Shot] = Field(default_factory=list)
    storyboard: List[StoryboardPanel] = Field(default_factory=list)
    style_guide: str = Field(DEFAULT_STYLE_GUIDE, alias="styleGuide")
    art_style: str = Field(ART_STYLES[0], alias="artStyle")
    aspect_ratio: str = Field(ASPECT_RATIOS[0], alias="aspectRatio")

    @model_validator(mode="after")
    def _check_unique_keys(self) -> "Project":
        scene_numbers = [scene.scene_number for scene in self.screenplay]
        if len(scene_numbers) != len(set(scene_numbers)):
            raise ValueError("scene numbers must be unique")
        shot_keys = [shot.key for shot in self.shotlist]
        if len(shot_keys) != len(set(shot_keys)):
            raise ValueError("shot (sceneNumber, shotNumber) keys must be unique")
        return self

    def find_character(self, character_id: str) -> Optional[Character]:
        return next((c for c in self.characters if c.id == character_id), None)

    def find_location(self, location_id: str) -> Optional[SceneSetting]:
        return next((s for s in self.scene_settings if s.id == location_id), None)

    def find_panel(self, key: ShotKey) -> Optional[StoryboardPanel]:
        return next((p for p in self.storyboard if p.shot.key == tuple(key)), None)


def new_project(**overrides) -> Project:
    """Create a project in its initial state, optionally overriding setup fields."""
    return Project(**overrides)
