"""
Generation Service boundary

The pipeline core never talks to a model provider directly. Everything it needs
from one is listed on ``GenerationService``; ``OpenRouterGenerationService`` is
the production implementation and tests supply their own.

Every call is fallible and returns nothing partial: it either produces a
complete result or raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import Field

from .artifact import Character, Scene, SceneSetting, Shot, StrictModel


# ---------- Boundary Types ----------

class ReferenceImage(StrictModel):
    """An inline image handed to an image-generation call."""
    mime_type: str = Field(..., description="MIME type of the image, e.g. image/png.")
    data: str = Field(..., description="Base64-encoded image bytes.")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class CharacterProfile(StrictModel):
    """A character as returned by extraction: name and description only."""
    name: str = Field(..., description="Character name exactly as written in the screenplay.")
    description: str = Field(..., description="Concise one-sentence description based on actions and dialogue.")


class ScreenplayResult(StrictModel):
    scenes: List[Scene]
    prompt: str = Field(..., description="Prompt text that produced the screenplay.")


class StoryboardImageResult(StrictModel):
    image: bytes
    prompt: str = Field(..., description="Prompt text that produced the image.")


# ---------- Service Contract ----------

class GenerationService(ABC):
    """Text and image generation consumed by the job runner."""

    @abstractmethod
    async def generate_screenplay(
        self, concept: str, genre: str, max_characters: int, max_scenes: int
    ) -> ScreenplayResult:
        ...

    @abstractmethod
    async def extract_characters(self, scenes: List[Scene], max_characters: int) -> List[CharacterProfile]:
        ...

    @abstractmethod
    async def extract_locations(self, scenes: List[Scene]) -> List[str]:
        ...

    @abstractmethod
    async def generate_character_image(
        self,
        character: Character,
        art_style: str,
        aspect_ratio: str,
        reference_image: Optional[ReferenceImage] = None,
    ) -> bytes:
        ...

    @abstractmethod
    async def generate_location_image(
        self,
        description: str,
        art_style: str,
        aspect_ratio: str,
        reference_image: Optional[ReferenceImage] = None,
    ) -> bytes:
        ...

    @abstractmethod
    async def generate_shotlist(self, scenes: List[Scene]) -> List[Shot]:
        ...

    @abstractmethod
    async def generate_storyboard_image(
        self,
        shot: Shot,
        characters: List[Character],
        locations: List[SceneSetting],
        art_style: str,
        aspect_ratio: str,
        reference_images: Optional[List[ReferenceImage]] = None,
    ) -> StoryboardImageResult:
        """Generate one panel image.

        ``characters`` and ``locations`` are the resolved references. When
        ``reference_images`` is given it is the exact, ordered set of images to
        supply and replaces the images of ``characters`` and ``locations``.
        With no references at all the image is generated from text only.
        """
        ...
