"""
OpenRouter Generation Service

Implements ``GenerationService`` on top of the OpenRouter chat-completions
wrapper. Text stages request structured JSON through DTOs built from the
artifact models' field descriptions; image stages request an image modality
and attach reference images inline as data URLs.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple, Type

from pydantic import BaseModel, Field, create_model

from openrouter_wrapper import llm_async

from .artifact import Character, Dialogue, Scene, SceneSetting, Shot, StrictModel
from .config import Settings
from .prompts import (
    character_image_prompt,
    characters_prompt,
    location_image_prompt,
    locations_prompt,
    screenplay_prompt,
    shotlist_prompt,
    storyboard_image_prompt,
    supported_aspect_ratio,
)
from .service import (
    CharacterProfile,
    GenerationService,
    ReferenceImage,
    ScreenplayResult,
    StoryboardImageResult,
)
from .utils import data_url_to_reference


class Operation(Enum):
    SCREENPLAY = "screenplay"
    CHARACTERS = "characters"
    LOCATIONS = "locations"
    CHARACTER_IMAGE = "character_image"
    LOCATION_IMAGE = "location_image"
    SHOTLIST = "shotlist"
    STORYBOARD_IMAGE = "storyboard_image"


IMAGE_OPERATIONS = (Operation.CHARACTER_IMAGE, Operation.LOCATION_IMAGE, Operation.STORYBOARD_IMAGE)


# ---------- Field Extraction Helper ----------

def get_field_desc(model_class: Type[BaseModel], field_name: str) -> str:
    """Extract field description from a Pydantic model."""
    field_info = model_class.model_fields[field_name]
    return field_info.description or f"{field_name} from {model_class.__name__}"


# ---------- Output DTOs ----------

# Shots as the model writes them: every creative field required so none is skipped
_SHOT_OUTPUT_FIELDS = [
    "scene_number", "shot_number", "description", "ert", "shot_size", "perspective",
    "movement", "equipment", "lens", "aspect_ratio", "notes", "vo", "sfx",
]


def create_output_dto(operation: Operation) -> Optional[Type[StrictModel]]:
    """Create the structured-output DTO for a text operation, or None for image operations."""
    fields = {}

    if operation == Operation.SCREENPLAY:
        scene_fields = {
            name: (int if name == "scene_number" else str, Field(..., description=get_field_desc(Scene, name)))
            for name in ("scene_number", "title", "description")
        }
        scene_fields["dialogue"] = (List[Dialogue], Field(..., description=get_field_desc(Scene, "dialogue")))
        SceneOutput = create_model("SceneOutput", **scene_fields, __base__=StrictModel)
        fields["scenes"] = (List[SceneOutput], Field(..., description="Screenplay scenes in order"))

    elif operation == Operation.CHARACTERS:
        fields["characters"] = (List[CharacterProfile], Field(..., description="Main characters of the screenplay"))

    elif operation == Operation.LOCATIONS:
        fields["locations"] = (List[str], Field(..., description=f"List of {get_field_desc(SceneSetting, 'description').lower()}"))

    elif operation == Operation.SHOTLIST:
        shot_fields = {
            name: (int if name.endswith("_number") else str, Field(..., description=get_field_desc(Shot, name)))
            for name in _SHOT_OUTPUT_FIELDS
        }
        shot_fields["dialogue"] = (List[Dialogue], Field(default_factory=list, description="Dialogue spoken during the shot"))
        ShotOutput = create_model("ShotOutput", **shot_fields, __base__=StrictModel)
        fields["shots"] = (List[ShotOutput], Field(..., description="Every shot of every scene, in order"))

    else:
        return None

    return create_model(
        f"{operation.value.title().replace('_', '')}Output",
        **fields,
        __base__=StrictModel
    )


# ---------- Service ----------

class OpenRouterGenerationService(GenerationService):
    """Generation Service backed by OpenRouter models."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()

    def _select_model(self, operation: Operation) -> Tuple[str, Optional[str]]:
        """Model and reasoning effort for an operation; reasoning is ignored for images."""
        if operation in IMAGE_OPERATIONS:
            return self.settings.image_model, None
        return self.settings.text_model, self.settings.reasoning_effort

    async def _structured(self, operation: Operation, prompt: str) -> BaseModel:
        OutputModel = create_output_dto(operation)
        model, reasoning = self._select_model(operation)
        response, _, _ = await llm_async(
            model=model,
            text=prompt,
            api_key=self.settings.openrouter_api_key,
            reasoning_effort=reasoning,
            response_format=OutputModel,
            logging=self.settings.llm_logging,
            _caller=operation.value,
        )
        if not isinstance(response, OutputModel):
            raise ValueError(f"{operation.value}: model response did not match the expected schema")
        return response

    async def _image(
        self, operation: Operation, prompt: str, aspect_ratio: str, images: List[ReferenceImage]
    ) -> bytes:
        model, _ = self._select_model(operation)
        response, _, _ = await llm_async(
            model=model,
            text=prompt,
            api_key=self.settings.openrouter_api_key,
            input_images=[image.to_data_url() for image in images] or None,
            reasoning_effort=None,
            output_is_image=True,
            aspect_ratio=supported_aspect_ratio(aspect_ratio),
            logging=self.settings.llm_logging,
            _caller=operation.value,
            image_generation_retries=self.settings.image_generation_retries,
        )
        return response

    async def generate_screenplay(self, concept, genre, max_characters, max_scenes) -> ScreenplayResult:
        prompt = screenplay_prompt(concept, genre, max_characters, max_scenes)
        output = await self._structured(Operation.SCREENPLAY, prompt)
        scenes = [Scene(**scene.model_dump(), prompt=prompt) for scene in output.scenes]
        return ScreenplayResult(scenes=scenes, prompt=prompt)

    async def extract_characters(self, scenes, max_characters) -> List[CharacterProfile]:
        output = await self._structured(Operation.CHARACTERS, characters_prompt(scenes, max_characters))
        return list(output.characters)[:max_characters]

    async def extract_locations(self, scenes) -> List[str]:
        output = await self._structured(Operation.LOCATIONS, locations_prompt(scenes))
        return [description for description in output.locations if description.strip()]

    async def generate_character_image(self, character, art_style, aspect_ratio, reference_image=None) -> bytes:
        prompt = character_image_prompt(character, art_style, aspect_ratio, reference_image is not None)
        images = [reference_image] if reference_image is not None else []
        return await self._image(Operation.CHARACTER_IMAGE, prompt, aspect_ratio, images)

    async def generate_location_image(self, description, art_style, aspect_ratio, reference_image=None) -> bytes:
        prompt = location_image_prompt(description, art_style, aspect_ratio, reference_image is not None)
        images = [reference_image] if reference_image is not None else []
        return await self._image(Operation.LOCATION_IMAGE, prompt, aspect_ratio, images)

    async def generate_shotlist(self, scenes) -> List[Shot]:
        output = await self._structured(Operation.SHOTLIST, shotlist_prompt(scenes))
        return [Shot(**shot.model_dump()) for shot in output.shots]

    async def generate_storyboard_image(
        self,
        shot: Shot,
        characters: List[Character],
        locations: List[SceneSetting],
        art_style: str,
        aspect_ratio: str,
        reference_images: Optional[List[ReferenceImage]] = None,
    ) -> StoryboardImageResult:
        if reference_images is None:
            reference_images = [
                data_url_to_reference(item.image_url)
                for item in [*characters, *locations] if item.image_url
            ]
        with_references = bool(reference_images)
        prompt = storyboard_image_prompt(shot, characters, locations, art_style, aspect_ratio, with_references)
        image = await self._image(Operation.STORYBOARD_IMAGE, prompt, aspect_ratio, reference_images)
        return StoryboardImageResult(image=image, prompt=prompt)
