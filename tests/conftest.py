"""
Pytest Configuration and Fixtures

Shared fixtures for all tests: a fake Generation Service that records calls
and a few sample projects at different stages of the pipeline.
"""

import asyncio
import io
from typing import List, Optional

import pytest
from PIL import Image

from storyboard_studio.artifact import Character, Dialogue, Project, Scene, SceneSetting, Shot, StoryboardPanel
from storyboard_studio.config import Settings
from storyboard_studio.registry import ArtifactRegistry
from storyboard_studio.runner import GenerationJobRunner
from storyboard_studio.service import (
    CharacterProfile,
    GenerationService,
    ReferenceImage,
    ScreenplayResult,
    StoryboardImageResult,
)
from storyboard_studio.utils import image_bytes_to_data_url


def png_bytes(color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(color=(200, 30, 30)) -> str:
    return image_bytes_to_data_url(png_bytes(color), "image/png")


def make_shot(scene_number: int, shot_number: int, description: str = "") -> Shot:
    return Shot(
        scene_number=scene_number,
        shot_number=shot_number,
        description=description or f"Shot {shot_number} of scene {scene_number}",
        shot_size="Wide",
        perspective="Eye-level",
        movement="Static",
    )


class FakeGenerationService(GenerationService):
    """In-memory Generation Service.

    Every call is appended to ``calls`` as ``(method, argument)``. Methods named
    in ``fail_methods`` raise; image calls for a name, description or shot key
    listed in ``fail_on`` raise. When ``gate`` is set, image calls wait on it
    after signalling ``started``.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_methods = set()
        self.fail_on = set()
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.scenes: List[Scene] = [
            Scene(scene_number=7, title="INT. LIGHTHOUSE - NIGHT", description="Anna climbs the stairs."),
            Scene(scene_number=7, title="EXT. SHORE - DAWN", description="Anna finds the radio.",
                  dialogue=[Dialogue(character="Anna", line="Hello?")]),
        ]
        self.profiles = [
            CharacterProfile(name="Anna", description="A weathered lighthouse keeper."),
            CharacterProfile(name="Bob", description="A radio operator lost at sea."),
        ]
        self.locations = ["A lighthouse lamp room at night", "A rocky shore at dawn"]
        self.shots: List[Shot] = [make_shot(1, 1, "Anna climbs"), make_shot(1, 2), make_shot(2, 1)]
        self.last_references: Optional[List[ReferenceImage]] = None

    async def _maybe_fail(self, method: str, subject=None):
        if method in self.fail_methods or (subject is not None and subject in self.fail_on):
            raise RuntimeError(f"{method} failed for {subject}")

    async def _wait_gate(self):
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()

    async def generate_screenplay(self, concept, genre, max_characters, max_scenes):
        self.calls.append(("generate_screenplay", concept))
        await self._maybe_fail("generate_screenplay")
        return ScreenplayResult(scenes=list(self.scenes), prompt=f"screenplay for {concept}")

    async def extract_characters(self, scenes, max_characters):
        self.calls.append(("extract_characters", len(scenes)))
        await self._maybe_fail("extract_characters")
        return list(self.profiles)[:max_characters]

    async def extract_locations(self, scenes):
        self.calls.append(("extract_locations", len(scenes)))
        await self._maybe_fail("extract_locations")
        return list(self.locations)

    async def generate_character_image(self, character, art_style, aspect_ratio, reference_image=None):
        self.calls.append(("generate_character_image", character.id))
        await self._wait_gate()
        await self._maybe_fail("generate_character_image", character.name)
        return png_bytes((10, 120, 10))

    async def generate_location_image(self, description, art_style, aspect_ratio, reference_image=None):
        self.calls.append(("generate_location_image", description))
        await self._wait_gate()
        await self._maybe_fail("generate_location_image", description)
        return png_bytes((10, 10, 120))

    async def generate_shotlist(self, scenes):
        self.calls.append(("generate_shotlist", len(scenes)))
        await self._maybe_fail("generate_shotlist")
        return list(self.shots)

    async def generate_storyboard_image(self, shot, characters, locations, art_style, aspect_ratio, reference_images=None):
        self.calls.append(("generate_storyboard_image", shot.key))
        self.last_references = reference_images
        await self._wait_gate()
        await self._maybe_fail("generate_storyboard_image", shot.key)
        names = ", ".join(c.name for c in characters)
        return StoryboardImageResult(image=png_bytes(), prompt=f"panel {shot.key} with {names}")

    def calls_to(self, method: str) -> list:
        return [arg for name, arg in self.calls if name == method]


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records the delays requested."""

    def __init__(self, on_sleep=None):
        self.delays: List[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))
        await asyncio.sleep(0)


@pytest.fixture
def fake_service():
    return FakeGenerationService()


@pytest.fixture
def settings():
    return Settings(openrouter_api_key=None, run_all_delay=1.0, llm_logging=False)


@pytest.fixture
def sample_project() -> Project:
    """Project at the Characters stage with mixed image state."""
    return Project(
        title="The Lighthouse Keeper",
        story_concept="A keeper hears a lost ship on the radio.",
        screenplay=[
            Scene(scene_number=1, title="INT. LIGHTHOUSE - NIGHT", description="Anna climbs the stairs."),
            Scene(scene_number=2, title="EXT. SHORE - DAWN", description="Anna finds the radio."),
        ],
        characters=[
            Character(id="char-anna", name="Anna", description="Keeper", image_url=png_data_url((1, 1, 1))),
            Character(id="char-bob", name="Bob", description="Operator", image_url=png_data_url((2, 2, 2))),
            Character(id="char-cara", name="Cara", description="Gull watcher"),
        ],
        scene_settings=[
            SceneSetting(id="loc-lamp", description="A lighthouse lamp room at night", image_url=png_data_url((3, 3, 3))),
            SceneSetting(id="loc-shore", description="A rocky shore at dawn"),
        ],
    )


@pytest.fixture
def storyboard_project(sample_project) -> Project:
    """Project with ten shots and panels, three of which already have images."""
    shots = [make_shot(1 + i // 5, 1 + i % 5, f"Anna and Bob, beat {i}") for i in range(10)]
    panels = [
        StoryboardPanel(shot=shot, image_url=png_data_url() if i in (0, 4, 7) else None)
        for i, shot in enumerate(shots)
    ]
    return sample_project.model_copy(update={"shotlist": shots, "storyboard": panels})


@pytest.fixture
def registry(sample_project):
    return ArtifactRegistry(sample_project)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def runner(registry, fake_service, settings, recording_sleep):
    return GenerationJobRunner(registry, fake_service, settings, sleep=recording_sleep)
