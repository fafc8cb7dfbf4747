"""
Generation Job Runner

Drives generation calls against the Artifact Registry:

- Bulk stages (screenplay, characters, locations, shotlist) are generated once
  and only replaced when ``force=True``. A failure leaves the previous output
  in place and raises ``StageGenerationError``.
- Single artifacts (character portrait, location art, storyboard panel) flip a
  busy flag, call the Generation Service and commit the result. A failure clears
  the flag, keeps the previous image and is recorded in ``failures``.
- "Run all" batches generate every artifact still lacking an image, one at a
  time, with a delay between calls and a cancellation check between items.

Every commit goes through ``ArtifactRegistry.update`` against the snapshot
current at commit time, never against the one read before an ``await``.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Literal, Optional, Set

from pydantic import Field

from .artifact import Character, Project, SceneSetting, Shot, ShotKey, StrictModel
from .config import Settings
from .references import resolve_panel_references
from .registry import ArtifactRegistry, UnknownArtifactError
from .service import GenerationService, ReferenceImage
from .stages import Stage
from .utils import data_url_to_reference, image_bytes_to_data_url, save_project_checkpoint


ArtifactKind = Literal["character", "location", "panel"]


class StageGenerationError(RuntimeError):
    """A bulk stage could not be generated; the previous stage output is unchanged."""

    def __init__(self, stage: Stage, message: str):
        super().__init__(message)
        self.stage = stage


class GenerationFailure(StrictModel):
    """A failed single-artifact generation, kept for display."""
    kind: ArtifactKind
    artifact_id: str
    message: str
    occurred_at: datetime = Field(default_factory=datetime.now)


class CancellationToken:
    """Cooperative stop signal checked between batch items."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def _panel_id(key: ShotKey) -> str:
    return f"{key[0]}-{key[1]}"


class GenerationJobRunner:
    """Runs generation jobs for one project registry against one service."""

    def __init__(
        self,
        registry: ArtifactRegistry,
        service: GenerationService,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.service = service
        self.settings = settings or Settings()
        self.failures: List[GenerationFailure] = []
        self._sleep = sleep
        self._batches: Dict[ArtifactKind, CancellationToken] = {}
        self._jobs_in_flight: Set[str] = set()

    # ---------- Status ----------

    def is_running_all(self, kind: ArtifactKind = "panel") -> bool:
        return kind in self._batches

    def is_generating(self, job: str) -> bool:
        """Whether a bulk job ("screenplay", "characters", "locations", "shotlist") is in flight."""
        return job in self._jobs_in_flight

    def clear_failures(self) -> List[GenerationFailure]:
        """Drop recorded failures once they have been shown. Returns the dropped records."""
        cleared, self.failures = self.failures, []
        return cleared

    def _record_failure(self, kind: ArtifactKind, artifact_id: str, error: Exception) -> None:
        failure = GenerationFailure(kind=kind, artifact_id=artifact_id, message=str(error) or type(error).__name__)
        self.failures.append(failure)
        print(f"  ❌ {kind} {artifact_id} failed: {failure.message[:100]}")

    def _checkpoint(self, stage: Stage) -> None:
        if self.settings.save_checkpoints:
            save_project_checkpoint(self.registry.project, stage, self.settings.checkpoint_dir)

    # ---------- Bulk Stages ----------

    async def _run_stage(
        self, stage: Stage, job: str, has_output: Callable[[Project], bool], force: bool, produce, commit
    ) -> bool:
        if has_output(self.registry.project) and not force:
            return False
        if job in self._jobs_in_flight:
            print(f"⚠️  {job} generation already in progress")
            return False

        self._jobs_in_flight.add(job)
        try:
            result = await produce(self.registry.project)
        except Exception as e:
            print(f"❌ {job} generation failed: {str(e)[:200]}")
            raise StageGenerationError(stage, f"Failed to generate {job}. Please try again.") from e
        finally:
            self._jobs_in_flight.discard(job)

        commit(result)
        print(f"✅ {job} generated")
        self._checkpoint(stage)
        return True

    async def generate_screenplay(self, force: bool = False) -> bool:
        """Generate the screenplay from the story concept; returns whether it was (re)generated."""
        async def produce(project: Project):
            print(f"🎬 Generating screenplay: {project.max_scenes} scenes, genre {project.genre}")
            return await self.service.generate_screenplay(
                project.story_concept, project.genre, project.max_characters, project.max_scenes
            )

        def commit(result) -> None:
            # Numbered 1..n in the order returned
            scenes = [
                scene.model_copy(update={"scene_number": number, "prompt": result.prompt})
                for number, scene in enumerate(result.scenes, start=1)
            ]
            self.registry.replace_screenplay(scenes)

        return await self._run_stage(Stage.SCREENPLAY, "screenplay", lambda p: bool(p.screenplay), force, produce, commit)

    async def extract_characters(self, force: bool = False) -> bool:
        async def produce(project: Project):
            print(f"🎬 Extracting up to {project.max_characters} characters from {len(project.screenplay)} scenes")
            return await self.service.extract_characters(project.screenplay, project.max_characters)

        def commit(profiles) -> None:
            self.registry.replace_characters([
                Character(id=f"char-{uuid.uuid4().hex[:12]}", name=profile.name, description=profile.description)
                for profile in profiles
            ])

        return await self._run_stage(Stage.CHARACTERS, "characters", lambda p: bool(p.characters), force, produce, commit)

    async def extract_locations(self, force: bool = False) -> bool:
        async def produce(project: Project):
            print(f"🎬 Extracting locations from {len(project.screenplay)} scenes")
            return await self.service.extract_locations(project.screenplay)

        def commit(descriptions) -> None:
            self.registry.replace_locations([
                SceneSetting(id=f"loc-{uuid.uuid4().hex[:12]}", description=description)
                for description in descriptions
            ])

        return await self._run_stage(Stage.CHARACTERS, "locations", lambda p: bool(p.scene_settings), force, produce, commit)

    async def generate_shotlist(self, force: bool = False) -> bool:
        """Generate the shotlist; a forced run replaces every shot and resyncs panels."""
        async def produce(project: Project):
            print(f"🎬 Generating shotlist for {len(project.screenplay)} scenes")
            shots = await self.service.generate_shotlist(project.screenplay)
            keys = [shot.key for shot in shots]
            if len(keys) != len(set(keys)):
                raise ValueError("shotlist contains duplicate (scene, shot) numbers")
            return shots

        return await self._run_stage(
            Stage.SHOTLIST, "shotlist", lambda p: bool(p.shotlist), force, produce, self.registry.replace_shotlist
        )

    # ---------- Single Artifacts ----------

    async def generate_character_image(self, character_id: str) -> bool:
        """Generate a portrait for one character. Returns True when an image was committed."""
        character = self.registry.project.find_character(character_id)
        if character is None:
            raise UnknownArtifactError(character_id)
        if character.is_generating:
            return False

        self.registry.update_character(character_id, is_generating=True)
        project = self.registry.project
        character = project.find_character(character_id)
        try:
            reference = data_url_to_reference(character.reference_image) if character.reference_image else None
            image = await self.service.generate_character_image(
                character, project.art_style, project.aspect_ratio, reference
            )
            image_url = image_bytes_to_data_url(image)
        except Exception as e:
            self._record_failure("character", character_id, e)
            self._commit_if_present(lambda p: p.find_character(character_id),
                                    lambda: self.registry.update_character(character_id, is_generating=False))
            return False

        return self._commit_if_present(
            lambda p: p.find_character(character_id),
            lambda: self.registry.update_character(character_id, image_url=image_url, is_generating=False),
        )

    async def generate_location_image(self, location_id: str) -> bool:
        location = self.registry.project.find_location(location_id)
        if location is None:
            raise UnknownArtifactError(location_id)
        if location.is_generating:
            return False

        self.registry.update_location(location_id, is_generating=True)
        project = self.registry.project
        location = project.find_location(location_id)
        try:
            reference = data_url_to_reference(location.reference_image) if location.reference_image else None
            image = await self.service.generate_location_image(
                location.description, project.art_style, project.aspect_ratio, reference
            )
            image_url = image_bytes_to_data_url(image)
        except Exception as e:
            self._record_failure("location", location_id, e)
            self._commit_if_present(lambda p: p.find_location(location_id),
                                    lambda: self.registry.update_location(location_id, is_generating=False))
            return False

        return self._commit_if_present(
            lambda p: p.find_location(location_id),
            lambda: self.registry.update_location(location_id, image_url=image_url, is_generating=False),
        )

    async def generate_panel_image(
        self,
        key: ShotKey,
        extra_references: Optional[List[ReferenceImage]] = None,
    ) -> bool:
        """Generate the image of the panel for shot ``key``.

        References come from the panel's override list when it has one, from
        automatic resolution otherwise. ``extra_references`` are one-off uploads
        appended after the resolved images and not stored on the panel.
        """
        key = tuple(key)
        panel = self.registry.project.find_panel(key)
        if panel is None:
            raise UnknownArtifactError(f"panel {key}")
        if panel.is_generating:
            return False

        self.registry.update_panel(key, is_generating=True)
        project = self.registry.project
        panel = project.find_panel(key)
        try:
            resolved = resolve_panel_references(panel, project)
            reference_images = None
            if resolved.explicit or extra_references:
                reference_images = resolved.images() + list(extra_references or [])
            result = await self.service.generate_storyboard_image(
                panel.shot,
                resolved.characters,
                resolved.locations,
                project.art_style,
                project.aspect_ratio,
                reference_images,
            )
            image_url = image_bytes_to_data_url(result.image)
        except Exception as e:
            self._record_failure("panel", _panel_id(key), e)
            self._commit_if_present(lambda p: p.find_panel(key),
                                    lambda: self.registry.update_panel(key, is_generating=False))
            return False

        return self._commit_if_present(
            lambda p: p.find_panel(key),
            lambda: self.registry.update_panel(key, image_url=image_url, prompt=result.prompt, is_generating=False),
        )

    async def save_and_regenerate_panel(
        self,
        key: ShotKey,
        shot: Optional[Shot] = None,
        prompt: Optional[str] = None,
        reference_ids: Optional[List[str]] = None,
        extra_references: Optional[List[ReferenceImage]] = None,
    ) -> bool:
        """Persist panel edits, then regenerate its image with them."""
        self.registry.save_panel(key, shot=shot, prompt=prompt, reference_ids=reference_ids)
        return await self.generate_panel_image(key, extra_references=extra_references)

    def _commit_if_present(self, lookup: Callable[[Project], object], commit: Callable[[], Project]) -> bool:
        # The artifact may have been deleted or replaced while the call was outstanding
        if lookup(self.registry.project) is None:
            return False
        commit()
        return True

    # ---------- Run All ----------

    async def _run_all(
        self,
        kind: ArtifactKind,
        ids: Iterable,
        needs_result: Callable[[Project, object], bool],
        generate: Callable[[object], Awaitable[bool]],
    ) -> int:
        if kind in self._batches:
            print(f"⚠️  run all {kind}s already in progress")
            return 0

        token = CancellationToken()
        self._batches[kind] = token
        pending = list(ids)
        issued = 0
        print(f"🎨 Running all {kind}s: {sum(1 for i in pending if needs_result(self.registry.project, i))} without images")
        try:
            for artifact_id in pending:
                if token.cancelled:
                    break
                if not needs_result(self.registry.project, artifact_id):
                    continue
                if issued:
                    await self._sleep(self.settings.run_all_delay)
                    if token.cancelled:
                        break
                succeeded = await generate(artifact_id)
                issued += 1
                print(f"  {'✅' if succeeded else '❌'} {kind} {artifact_id}")
        finally:
            if self._batches.get(kind) is token:
                del self._batches[kind]

        print(f"📊 Run all {kind}s: {issued} generation(s) issued{' (stopped)' if token.cancelled else ''}")
        return issued

    def stop_all(self, kind: ArtifactKind = "panel") -> None:
        """Stop a running batch after its in-flight item; completed results are kept."""
        token = self._batches.pop(kind, None)
        if token is not None:
            token.cancel()

    async def run_all_panels(self) -> int:
        """Generate every panel lacking an image, in storyboard order. Returns calls issued."""
        def needs_result(project: Project, key) -> bool:
            panel = project.find_panel(key)
            return panel is not None and not panel.image_url and not panel.is_generating

        keys = [panel.shot.key for panel in self.registry.project.storyboard]
        return await self._run_all("panel", keys, needs_result, self.generate_panel_image)

    async def run_all_characters(self) -> int:
        def needs_result(project: Project, character_id) -> bool:
            character = project.find_character(character_id)
            return character is not None and not character.image_url and not character.is_generating

        ids = [c.id for c in self.registry.project.characters]
        return await self._run_all("character", ids, needs_result, self.generate_character_image)

    async def run_all_locations(self) -> int:
        def needs_result(project: Project, location_id) -> bool:
            location = project.find_location(location_id)
            return location is not None and not location.image_url and not location.is_generating

        ids = [s.id for s in self.registry.project.scene_settings]
        return await self._run_all("location", ids, needs_result, self.generate_location_image)
