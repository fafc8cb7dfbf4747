import json
import base64
import binascii
import asyncio
import aiohttp
import random
from datetime import datetime
from typing import Optional, Union, List, Type, Tuple, Dict, Any, Literal
from pydantic import BaseModel

ReasoningEffort = Literal["minimal", "low", "medium", "high"]

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterError(RuntimeError):
    """Raised when OpenRouter returns an error payload instead of a completion."""


def _log_llm_call(start_time: datetime, end_time: datetime, tokens_in: int, tokens_out: int, function_name: str, prompt_preview: str):
    """Log LLM call information to llm_log.txt"""
    duration = (end_time - start_time).total_seconds()
    log_line = f"{start_time.strftime('%Y-%m-%d %H:%M:%S')} | {function_name} | Duration: {duration:.2f}s | Tokens In: {tokens_in} | Tokens Out: {tokens_out} | Prompt: {prompt_preview}\n"

    with open("llm_log.txt", "a", encoding="utf-8") as f:
        f.write(log_line)


def _count_tokens_in_messages(messages: List[Dict[str, Any]]) -> int:
    """Rough token count estimation for input messages"""
    total_chars = 0
    for msg in messages:
        content = msg.get("content", "")
        if isinstance(content, str):
            total_chars += len(content)
        elif isinstance(content, list):
            for item in content:
                if isinstance(item, dict) and item.get("type") == "text":
                    total_chars += len(item.get("text", ""))
    # ~4 characters per token
    return total_chars // 4


def _build_messages(
    context: Optional[str],
    text: str,
    input_images: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    """Build message list for API request.

    Args:
        context: Optional system message
        text: User's text prompt
        input_images: Optional image URLs or data URLs to include

    Returns:
        List of message dicts ready for API
    """
    messages = []
    if context:
        messages.append({"role": "system", "content": context})

    content = [{"type": "text", "text": text}]
    for url in input_images or []:
        content.append({"type": "image_url", "image_url": {"url": url}})

    messages.append({"role": "user", "content": content})
    return messages


def _build_payload(
    model: str,
    messages: List[Dict[str, Any]],
    reasoning_effort: Optional[ReasoningEffort],
    response_format: Optional[Type[BaseModel]],
    output_is_image: bool,
    aspect_ratio: Optional[str],
) -> Dict[str, Any]:
    """Build API request payload.

    Args:
        model: Model identifier
        messages: Message list from _build_messages()
        reasoning_effort: Reasoning level or None
        response_format: Optional Pydantic model for structured output
        output_is_image: Request image output modality
        aspect_ratio: Requested image aspect ratio, image calls only

    Returns:
        Payload dict ready for API request
    """
    payload = {"model": model, "messages": messages}

    if output_is_image:
        payload["modalities"] = ["image", "text"]
        if aspect_ratio:
            payload["image_config"] = {"aspect_ratio": aspect_ratio}
    elif reasoning_effort is not None:
        payload["reasoning"] = {"effort": reasoning_effort, "exclude": True}

    if response_format is not None:
        payload["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": response_format.__name__,
                "schema": response_format.model_json_schema()
            }
        }

    return payload


def _extract_image_url(full_response: Dict[str, Any]) -> Optional[str]:
    """Extract image data URL from API response.

    Handles multiple response formats:
    - {"images": [{"image_url": {"url": "data:image/..."}}]}
    - {"images": [{"image_url": "data:image/..."}]}
    - Content field with data URL
    """
    try:
        images = full_response.get('choices', [{}])[0].get('message', {}).get('images', [])
        if images:
            image_url_field = images[0].get('image_url')
            if isinstance(image_url_field, dict):
                return image_url_field.get('url')
            elif isinstance(image_url_field, str):
                return image_url_field
    except (KeyError, IndexError, TypeError, AttributeError):
        pass

    try:
        content = full_response['choices'][0]['message']['content']
        if content and isinstance(content, str) and content.startswith('data:image/'):
            return content
    except (KeyError, IndexError, TypeError):
        pass

    return None


def _decode_image_data(image_data_url: str) -> bytes:
    """Decode base64 image data from data URL.

    Raises:
        ValueError: If decoding fails
    """
    try:
        base64_data = image_data_url.split(',', 1)[1]
        return base64.b64decode(base64_data)
    except (IndexError, binascii.Error) as e:
        raise ValueError(f"Failed to decode base64 image data: {str(e)}")


def _save_image_debug_info(model: str, text: str, full_response: Dict[str, Any]) -> None:
    """Append debug information to image_generation_debug.txt when image generation fails."""
    message = {}
    try:
        message = full_response.get('choices', [{}])[0].get('message', {}) or {}
    except (KeyError, IndexError, AttributeError):
        pass

    debug_info = {
        "timestamp": datetime.now().isoformat(),
        "error": "No base64 image data found in response",
        "model": model,
        "prompt": text[:200] if text else "None",
        "message_keys": list(message.keys()),
        "message_content": str(message.get('content'))[:500],
        "full_response_keys": list(full_response.keys()) if isinstance(full_response, dict) else 'Not a dict',
    }

    try:
        with open("image_generation_debug.txt", "a") as f:
            f.write(f"\n{'='*80}\n")
            f.write(f"IMAGE GENERATION FAILURE - {debug_info['timestamp']}\n")
            f.write(f"{'='*80}\n")
            f.write(json.dumps(debug_info, indent=2))
            f.write(f"\n{'='*80}\n")
    except OSError as e:
        print(f"⚠️  Could not write image debug info: {e}")


def _parse_structured_response(
    message_content: Union[str, bytes],
    response_format: Optional[Type[BaseModel]]
) -> Union[str, bytes, BaseModel]:
    """Parse structured output if requested; return the raw content if parsing fails."""
    if response_format is not None and message_content and isinstance(message_content, str):
        try:
            return response_format.model_validate_json(message_content)
        except ValueError:
            pass
    return message_content


def _process_image_response(full_response: Dict[str, Any], model: str, text: str) -> bytes:
    """Process and decode image from API response.

    Raises:
        ValueError: If no valid image data found
    """
    image_data_url = _extract_image_url(full_response)

    if image_data_url and image_data_url.startswith('data:image/'):
        return _decode_image_data(image_data_url)
    _save_image_debug_info(model, text, full_response)
    raise ValueError(
        "No base64 image data found in response. "
        "[Debug info saved to image_generation_debug.txt]"
    )


async def llm_async(
    model: str,
    text: str,
    api_key: Optional[str],
    context: Optional[str] = None,
    input_images: Optional[List[str]] = None,
    reasoning_effort: Optional[ReasoningEffort] = "minimal",
    response_format: Optional[Type[BaseModel]] = None,
    output_is_image: bool = False,
    aspect_ratio: Optional[str] = None,
    logging: bool = True,
    _caller: str = "async",
    image_generation_retries: int = 1,
) -> Tuple[Union[str, bytes, BaseModel], dict, List[Dict[str, Any]]]:
    """
    Async OpenRouter chat-completions call

    Args:
        model: The model to use (e.g., "google/gemini-2.5-flash")
        text: The main text prompt
        api_key: OpenRouter API key
        context: Optional system message
        input_images: Optional input image URLs or data URLs
        reasoning_effort: "minimal" | "low" | "medium" | "high", or None to omit
        response_format: Optional Pydantic model class for structured output
        output_is_image: If True, expects base64 image data and returns decoded bytes
        aspect_ratio: Requested aspect ratio for image output
        logging: If True (default), log call details to llm_log.txt
        image_generation_retries: Extra attempts when an image response carries no image

    Returns:
        Tuple of (message_content, full_response, message_history).
        message_content is bytes for images, a parsed model when response_format
        parses, otherwise the raw string.
    """
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY environment variable not found")

    start_time = datetime.now() if logging else None

    messages = _build_messages(context, text, input_images)
    payload = _build_payload(model, messages, reasoning_effort, response_format, output_is_image, aspect_ratio)

    # Retry loop for image generation or JSON decode errors
    max_json_retries = 3
    max_image_retries = image_generation_retries if output_is_image else 0
    total_attempts = max_json_retries + max_image_retries

    full_response: Dict[str, Any] = {}
    for attempt in range(total_attempts):
        async with aiohttp.ClientSession() as session:
            async with session.post(
                OPENROUTER_URL,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                data=json.dumps(payload),
            ) as response:
                try:
                    full_response = await response.json(content_type=None)
                except json.JSONDecodeError:
                    if attempt < max_json_retries - 1:
                        delay = 0.5 + random.uniform(0, 0.5)
                        print(f"JSON decode error on attempt {attempt + 1}, retrying in {delay:.1f}s...")
                        await asyncio.sleep(delay)
                        continue
                    response_text = await response.text()
                    print(f"Error: Non-JSON response from API after {max_json_retries} attempts. Status: {response.status}")
                    print(f"Response text: {response_text[:500]}")
                    raise

        if isinstance(full_response, dict) and full_response.get("error"):
            error = full_response["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise OpenRouterError(f"OpenRouter error: {message}")

        if output_is_image:
            image_data_url = _extract_image_url(full_response)
            if image_data_url and image_data_url.startswith('data:image/'):
                break
            if attempt < total_attempts - 1:
                delay = 1.0 + random.uniform(0, 1.0)
                print(f"No image data in response (attempt {attempt + 1}/{total_attempts}), retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)
                continue
            # Last attempt failed, will raise in post-processing
        break

    try:
        message_content = full_response['choices'][0]['message']['content']
        assistant_message = full_response['choices'][0]['message']
    except (KeyError, IndexError, TypeError):
        message_content = ""
        assistant_message = {"role": "assistant", "content": ""}

    if output_is_image:
        message_content = _process_image_response(full_response, model, text)

    message_content = _parse_structured_response(message_content, response_format)

    updated_messages = messages.copy()
    updated_messages.append(assistant_message)

    if logging and start_time:
        end_time = datetime.now()
        usage = full_response.get('usage', {}) or {}
        tokens_in = usage.get('prompt_tokens') or _count_tokens_in_messages(messages)
        tokens_out = usage.get('completion_tokens', 0)
        prompt_preview = text[:20] + "..." if len(text) > 20 else text
        _log_llm_call(start_time, end_time, tokens_in, tokens_out, _caller, prompt_preview)

    return message_content, full_response, updated_messages
