"""
Prompt builders for every generation call.

Each builder takes plain project data and returns the text sent to the model.
"""

from __future__ import annotations

import json
from typing import List

from .artifact import Character, Scene, SceneSetting, Shot

# Aspect ratios the image models accept; anything else falls back to the first
SUPPORTED_ASPECT_RATIOS = ["16:9", "9:16", "4:3", "3:4", "1:1"]


def supported_aspect_ratio(aspect_ratio: str) -> str:
    return aspect_ratio if aspect_ratio in SUPPORTED_ASPECT_RATIOS else SUPPORTED_ASPECT_RATIOS[0]


def screenplay_to_json(scenes: List[Scene]) -> str:
    return json.dumps([scene.model_dump(by_alias=True, exclude={"prompt"}) for scene in scenes], indent=2)


# ---------- Text Stages ----------

def screenplay_prompt(concept: str, genre: str, max_characters: int, max_scenes: int) -> str:
    return (
        "You are a professional screenwriter. Based on the following story concept, create a screenplay.\n\n"
        "**Project Details:**\n"
        f"- Genre: {genre}\n"
        f"- Maximum Characters: {max_characters}\n"
        f"- Maximum Scenes: {max_scenes}\n\n"
        "**Story Concept:**\n"
        f"{concept}\n\n"
        f"Generate a screenplay with exactly {max_scenes} scenes, numbered from 1. "
        "Ensure character names are consistent across scenes and dialogue."
    )


def characters_prompt(scenes: List[Scene], max_characters: int) -> str:
    return (
        f"From the following screenplay, identify the main characters (up to {max_characters}). "
        "For each character, provide their name and a concise one-sentence description based on "
        "their actions and dialogue.\n\n"
        f"Screenplay:\n{screenplay_to_json(scenes)}"
    )


def locations_prompt(scenes: List[Scene]) -> str:
    return (
        "From the following screenplay, list the distinct locations where scenes take place. "
        "For each location, write one visual description covering setting, time of day, "
        "atmosphere and notable features. Do not mention characters.\n\n"
        f"Screenplay:\n{screenplay_to_json(scenes)}"
    )


def shotlist_prompt(scenes: List[Scene]) -> str:
    return (
        "You are a film director. Create a detailed shotlist from the provided screenplay. "
        "For each scene, break it down into logical shots numbered from 1 within the scene.\n\n"
        f"Screenplay:\n{screenplay_to_json(scenes)}\n\n"
        "For each shot, provide all the required fields. 'sfx' (sound effects) should be short and "
        "impactful (e.g., \"CRASH\", \"Footsteps echo\"). 'vo' is for voice-over narration only. "
        "Refer to characters by their exact screenplay names in the description."
    )


# ---------- Image Stages ----------

def character_image_prompt(character: Character, art_style: str, aspect_ratio: str, has_reference: bool) -> str:
    details = (
        f"Character Name: {character.name}\n"
        f"Description: {character.description}\n"
        f"Age: {character.age}\n"
        f"Personality: {character.personality}\n"
        f"Appearance: {character.appearance}\n"
        f"Hair: {character.hair}\n"
        f"Skin: {character.skin}\n"
        f"Outfit: {character.outfit}\n"
        f"Accessories: {character.accessories}\n"
        "Context: Neutral background for a character sheet, full body shot.\n"
        f"Style & Mood: {art_style}\n"
        f"Aspect Ratio: {supported_aspect_ratio(aspect_ratio)}"
    )
    if has_reference:
        return (
            "Redevelop this character based on the reference image and the following details. "
            "Make sure the output is just the character on a neutral background.\n\n" + details
        )
    return "Character sheet, full body, neutral background.\n\n" + details


def location_image_prompt(description: str, art_style: str, aspect_ratio: str, has_reference: bool) -> str:
    prompt = (
        "Generate an establishing image of a film location with no people in it.\n\n"
        f"Location: {description}\n"
        f"Style & Mood: {art_style}\n"
        f"Aspect Ratio: {supported_aspect_ratio(aspect_ratio)}"
    )
    if has_reference:
        prompt = "Use the reference image as the basis for layout and mood.\n\n" + prompt
    return prompt


def storyboard_image_prompt(
    shot: Shot,
    characters: List[Character],
    locations: List[SceneSetting],
    art_style: str,
    aspect_ratio: str,
    with_references: bool,
) -> str:
    prompt = (
        "Create a cinematic image for a storyboard.\n"
        f"Scene Description: {shot.description}.\n"
        f"Shot Details: {shot.shot_size}, {shot.perspective} perspective, {shot.movement} movement.\n"
        f"Style: {art_style}.\n"
        f"Aspect Ratio: {supported_aspect_ratio(aspect_ratio)}."
    )
    if not with_references:
        return prompt
    prompt += "\nUse the provided images as direct references for appearance, clothing, likeness and setting."
    if characters:
        prompt += f"\nCharacters to include: {', '.join(c.name for c in characters)}."
    if locations:
        prompt += f"\nLocations for reference: {'; '.join(s.description for s in locations)}."
    return prompt
