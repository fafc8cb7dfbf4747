#!/usr/bin/env python3

import asyncio
import sys

from dotenv import load_dotenv

from storyboard_studio import ArtifactRegistry, GenerationJobRunner, Settings, Stage, StageNavigator
from storyboard_studio.openrouter_service import OpenRouterGenerationService
from storyboard_studio.utils import sanitize_name

load_dotenv()


async def main(checkpoint_path=None):
    settings = Settings.from_env()
    registry = ArtifactRegistry()

    if checkpoint_path:
        # Resume: completed stages are skipped because their output already exists
        registry.load_checkpoint(checkpoint_path)
        print(f"Resuming from checkpoint: {checkpoint_path}")
    else:
        registry.set_fields(
            title="The Lighthouse Keeper",
            genre="Drama",
            max_characters=2,
            max_scenes=4,
            story_concept=(
                "An aging lighthouse keeper on a remote island finds a washed-up radio that "
                "picks up messages from a ship lost forty years ago, and must decide whether "
                "to answer."
            ),
            art_style="Semi-realistic",
            aspect_ratio="16:9",
        )

    runner = GenerationJobRunner(registry, OpenRouterGenerationService(settings), settings)
    navigator = StageNavigator(registry, Stage.IDEA)

    print(f"Starting storyboard generation for: {registry.project.title}")
    print("=" * 50)

    await runner.generate_screenplay()
    navigator.advance()

    await asyncio.gather(runner.extract_characters(), runner.extract_locations())
    await runner.run_all_characters()
    await runner.run_all_locations()
    navigator.advance()

    await runner.generate_shotlist()
    navigator.advance()

    await runner.run_all_panels()
    navigator.advance()

    project = registry.project
    print("=" * 50)
    print("Storyboard generation completed!")
    print(f"Generated {len(project.screenplay)} scenes")
    print(f"Generated {len(project.characters)} characters, {len(project.scene_settings)} locations")
    print(f"Generated {sum(1 for p in project.storyboard if p.image_url)}/{len(project.storyboard)} panel images")
    print(f"Reached stage: {navigator.current_stage.name.lower()}")

    if runner.failures:
        print(f"⚠️  {len(runner.failures)} generation(s) failed:")
        for failure in runner.failures:
            print(f"  - {failure.kind} {failure.artifact_id}: {failure.message[:100]}")

    output_path = f"{sanitize_name(project.title)}_storyboard.json"
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(registry.export_json())

    print(f"Storyboard saved to {output_path}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
