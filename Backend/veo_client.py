"""
Veo 3 production planning. Gemini writes the director's brief; the keyframe
grid and render settings are computed here.
"""

import logging
import math

import config
import gemini_client
from errors import NoResultError

logger = logging.getLogger(__name__)

TEXT_TO_VIDEO = "text-to-video"
IMAGE_TO_VIDEO = "image-to-video"

RATE_LIMIT_MARKERS = ("429", "RATE_LIMIT", "quota")


def build_director_prompt(mode, duration, aspect_ratio, generate_audio=True):
    if mode == IMAGE_TO_VIDEO:
        audio = "Sound effects and music recommendations" if generate_audio else "Silent video guidance"
        return (
            "You are an expert AI video director specializing in image-to-video animation using Veo 3 technology.\n"
            "Analyze the provided image and create a detailed animation production brief based on the "
            "user's motion prompt.\n\n"
            "Your output should include:\n"
            "1. **Scene Analysis**: What's in the image, key elements, depth layers\n"
            "2. **Motion Plan**: Detailed frame-by-frame motion description\n"
            "3. **Camera Work**: Virtual camera movements (dolly, pan, zoom, rotate)\n"
            f"4. **Timing Breakdown**: Precise timing for {duration} seconds at {config.VEO_FPS}fps\n"
            f"5. **Audio Suggestions**: {audio}\n"
            f"6. **Technical Specs**: {aspect_ratio} aspect ratio, recommended render settings\n\n"
            "Be specific with motion vectors, easing functions, and keyframe positions."
        )

    audio = "Music genre, sound effects, ambient audio" if generate_audio else "Silent video"
    return (
        "You are an expert AI video director using Veo 3 technology to create stunning videos "
        "from text descriptions.\n\n"
        f"Create a comprehensive video production plan for a {duration}-second video in "
        f"{aspect_ratio} aspect ratio.\n\n"
        "Your output must include:\n"
        "1. **Visual Concept**: Overall artistic direction and style\n"
        "2. **Storyboard**: Shot-by-shot breakdown with timestamps\n"
        "3. **Scene Descriptions**: Detailed visual descriptions for each segment\n"
        "4. **Camera Directions**: Specific camera movements and angles\n"
        "5. **Lighting & Color**: Color grading, lighting mood, atmosphere\n"
        "6. **Motion Elements**: Subject movements, particle effects, transitions\n"
        f"7. **Audio Design**: {audio}\n"
        "8. **Technical Specs**: Resolution recommendations, render quality\n\n"
        "Make it cinematic, visually striking, and production-ready."
    )


def build_keyframes(duration):
    total_frames = duration * config.VEO_FPS
    count = min(8, math.ceil(duration / 2))
    keyframes = []
    for i in range(count):
        # A single keyframe sits at t=0
        time = (i / (count - 1)) * duration if count > 1 else 0.0
        frame = round(time * config.VEO_FPS)
        keyframes.append({
            "time": round(time, 2),
            "description": f"Keyframe {i + 1} (Frame {frame}/{total_frames})",
        })
    return keyframes


def get_resolution(aspect_ratio):
    return "1080x1920" if aspect_ratio == "9:16" else "1920x1080"


def create_production_plan(prompt, mode, duration, aspect_ratio, api_key, image_base64=None,
                           generate_audio=True):
    """Returns the Gemini-written production brief for a Veo render."""
    if not prompt:
        raise ValueError("Prompt is required")

    logger.info(f"Veo3 Video Gen: mode={mode}, duration={duration}s, aspect={aspect_ratio}, audio={generate_audio}")
    parts = [
        {"text": build_director_prompt(mode, duration, aspect_ratio, generate_audio)},
        {"text": f'\n\nUser Prompt: "{prompt}"'},
    ]
    if mode == IMAGE_TO_VIDEO and image_base64:
        parts.append({"inlineData": {"mimeType": "image/jpeg", "data": image_base64}})

    data = gemini_client.generate_content_rest(
        config.GEMINI_VIDEO_MODEL,
        parts,
        api_key,
        {"temperature": 0.85, "maxOutputTokens": 4000},
        rate_limit_markers=RATE_LIMIT_MARKERS,
    )
    plan = gemini_client.extract_candidate_text(data)
    if not plan:
        raise NoResultError("Failed to generate production plan")

    logger.info("Veo3 production plan generated successfully")
    return plan


def build_plan_response(plan, prompt, mode, duration, aspect_ratio, generate_audio=True):
    if mode == IMAGE_TO_VIDEO:
        message = "Animation production plan created. Ready for Veo 3 rendering."
    else:
        message = "Video production plan created. Ready for Veo 3 rendering."

    return {
        "success": True,
        "mode": mode,
        "productionPlan": plan,
        "keyframes": build_keyframes(duration),
        "settings": {
            "duration": duration,
            "aspectRatio": aspect_ratio,
            "generateAudio": generate_audio,
            "fps": config.VEO_FPS,
            "resolution": get_resolution(aspect_ratio),
        },
        "status": "ready",
        "message": message,
        "estimatedRenderTime": math.ceil(duration * 1.5),
        "prompt": prompt,
    }
