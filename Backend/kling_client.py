"""
Kling AI video generation: task creation plus the generation plan returned
to the front-end while the task renders.
"""

import logging
import math

import requests

import config
from errors import NoResultError, ProviderFetchError, RateLimitedError

logger = logging.getLogger(__name__)

TEXT_TO_VIDEO = "text-to-video"
IMAGE_TO_VIDEO = "image-to-video"

FRAME_RATE = 30
SECONDS_PER_RENDERED_SECOND = 30

RESOLUTIONS = {
    "16:9": "1920x1080 (Full HD Widescreen)",
    "9:16": "1080x1920 (Vertical/Mobile)",
    "1:1": "1080x1080 (Square/Social)",
    "4:3": "1440x1080 (Standard)",
}


def get_resolution(aspect_ratio):
    return RESOLUTIONS.get(aspect_ratio, "1920x1080")


def build_request_body(prompt, mode, duration, aspect_ratio, negative_prompt="", image_base64=None):
    body = {
        "model_name": config.KLING_MODEL,
        "prompt": prompt,
        "negative_prompt": negative_prompt or config.KLING_DEFAULT_NEGATIVE_PROMPT,
        "cfg_scale": 0.5,
        "mode": "std" if mode == TEXT_TO_VIDEO else "pro",
        "duration": str(duration),
        "aspect_ratio": aspect_ratio.replace(":", "_"),  # Kling wants 16_9
    }
    if mode == IMAGE_TO_VIDEO and image_base64:
        body["image"] = image_base64
        body["image_tail"] = image_base64
    return body


def _looks_rate_limited(status_code, text):
    lowered = text.lower()
    return status_code == 429 or "429" in text or "rate limit" in lowered or "quota" in lowered


def create_video_task(prompt, mode, duration, aspect_ratio, api_key, negative_prompt="", image_base64=None,
                      timeout=config.PROVIDER_TIMEOUT_SECONDS):
    """Creates a Kling generation task and returns its task id."""
    if not prompt:
        raise ValueError("Prompt is required")

    logger.info(f"Kling Video Gen: mode={mode}, duration={duration}s, aspect={aspect_ratio}")
    body = build_request_body(prompt, mode, duration, aspect_ratio, negative_prompt, image_base64)

    try:
        response = requests.post(
            f"{config.KLING_API_BASE}/videos/text2video",
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=body,
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.error(f"Kling AI exception: {e}")
        raise ProviderFetchError(str(e)) from e

    logger.info(f"Kling API Response Status: {response.status_code}")
    if not response.ok:
        logger.error(f"Kling AI error: {response.text}")
        if _looks_rate_limited(response.status_code, response.text):
            raise RateLimitedError("Rate limit exceeded. Please wait a moment and try again.")
        raise ProviderFetchError(
            f"Kling AI Error ({response.status_code}): {response.text}",
            provider_status=response.status_code,
        )

    try:
        result = response.json()
    except ValueError as e:
        raise ProviderFetchError(f"Kling AI returned invalid JSON: {e}") from e

    task_id = (result.get("data") or {}).get("task_id")
    if not task_id:
        logger.error(f"No task ID in response: {result}")
        raise NoResultError("Failed to create Kling video generation task - No task ID returned")

    logger.info(f"Kling task created successfully: {task_id}")
    return task_id


def build_scene_breakdown(duration):
    segments = min(5, math.ceil(duration / 2))
    breakdown = []
    for i in range(segments):
        start = (i / segments) * duration
        end = ((i + 1) / segments) * duration
        if i == 0:
            description = "Opening scene: Establishing shot with main subject introduction"
        elif i == segments - 1:
            description = "Closing scene: Final reveal or conclusion of motion sequence"
        else:
            description = f"Mid-scene {i}: Continuous action and development of visual narrative"
        breakdown.append({"timeRange": f"{start:.1f}s - {end:.1f}s", "description": description})
    return breakdown


def build_camera_movements(mode):
    if mode == IMAGE_TO_VIDEO:
        return [
            "Smooth parallax effect to add depth to the static image",
            "Subtle zoom and pan to create dynamic framing",
            "Natural camera breathing for organic feel",
            "Perspective shifts to enhance 2.5D illusion",
        ]
    return [
        "Cinematic establishing shot with smooth dolly-in movement",
        "Dynamic camera tracking following main action",
        "Orbital rotation around key subject points",
        "Depth-of-field shifts to guide viewer attention",
        "Final pull-back or push-in for dramatic conclusion",
    ]


def build_generation_plan(prompt, negative_prompt, mode, duration, aspect_ratio):
    lines = [
        "KLING AI VIDEO GENERATION PLAN",
        "================================",
        "",
        f"Prompt: {prompt}",
    ]
    if negative_prompt:
        lines.append(f"Negative Prompt: {negative_prompt}")
    lines += [
        f"Mode: {mode}",
        f"Duration: {duration} seconds",
        f"Aspect Ratio: {aspect_ratio}",
        "Model: Kling AI v1 (Advanced Text-to-Video)",
        "",
        "PRODUCTION APPROACH:",
        "-------------------",
    ]
    if mode == IMAGE_TO_VIDEO:
        lines += [
            "- Starting from provided image with smooth animation",
            "- Preserving image composition and style",
            "- Adding natural motion and depth",
            "- Camera movements to enhance the scene",
        ]
    else:
        lines += [
            "- Full scene generation from text description",
            "- Cinematic composition and framing",
            "- Natural lighting and realistic rendering",
            "- Smooth motion and transitions",
        ]
    lines += [
        "",
        "TECHNICAL SPECIFICATIONS:",
        "------------------------",
        f"- Frame Rate: {FRAME_RATE} FPS",
        f"- Resolution: {get_resolution(aspect_ratio)}",
        "- Codec: H.264",
        "",
        f"Expected rendering time: ~{duration * SECONDS_PER_RENDERED_SECOND} seconds",
        "Video will be ready for download once processing completes.",
    ]
    return "\n".join(lines)


def build_generation_summary(task_id, prompt, negative_prompt, mode, duration, aspect_ratio, generate_audio=True):
    """Response body handed back to the caller once the task is queued at Kling."""
    if mode == IMAGE_TO_VIDEO:
        message = "Video generation started. Animation will be created from your image."
    else:
        message = "Video generation started. Your AI video is being created."

    return {
        "success": True,
        "taskId": task_id,
        "mode": mode,
        "prompt": prompt,
        "negativePrompt": negative_prompt,
        "generationPlan": build_generation_plan(prompt, negative_prompt, mode, duration, aspect_ratio),
        "sceneBreakdown": build_scene_breakdown(duration),
        "cameraMovements": build_camera_movements(mode),
        "settings": {
            "duration": duration,
            "aspectRatio": aspect_ratio,
            "generateAudio": generate_audio,
            "fps": FRAME_RATE,
            "resolution": get_resolution(aspect_ratio),
            "model": "Kling AI v1",
        },
        "status": "processing",
        "message": message,
        "estimatedGenerationTime": duration * SECONDS_PER_RENDERED_SECOND,
    }
