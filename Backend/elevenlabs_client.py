"""
ElevenLabs REST calls: text-to-speech, speech-to-text, instant voice cloning
and dubbing.
"""

import logging

import requests

import config
from errors import ProviderFetchError, RateLimitedError

logger = logging.getLogger(__name__)

DEFAULT_DUBBING_NAME = "AI Studio Dubbing Project"


def _headers(api_key, json_body=False):
    headers = {"xi-api-key": api_key}
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


def _send(method, path, api_key, context, **kwargs):
    url = f"{config.ELEVENLABS_API_BASE}{path}"
    kwargs.setdefault("timeout", config.PROVIDER_TIMEOUT_SECONDS)
    try:
        response = requests.request(method, url, **kwargs)
    except requests.RequestException as e:
        logger.error(f"{context}: {e}")
        raise ProviderFetchError(f"{context}: {e}") from e

    if not response.ok:
        logger.error(f"{context}: {response.status_code} {response.text}")
        if response.status_code == 429:
            raise RateLimitedError("Rate limit exceeded. Please try again later.")
        raise ProviderFetchError(f"{context}: {response.text}", provider_status=response.status_code)
    return response


def text_to_speech(text, api_key, voice_id=None, speed=None, stability=None, similarity_boost=None):
    """Returns MP3 bytes for the given text."""
    if not text:
        raise ValueError("Text is required")

    voice = voice_id or config.ELEVENLABS_DEFAULT_VOICE
    payload = {
        "text": text,
        "model_id": config.ELEVENLABS_TTS_MODEL,
        "voice_settings": {
            "stability": 0.5 if stability is None else stability,
            "similarity_boost": 0.75 if similarity_boost is None else similarity_boost,
            "style": 0.5,
            "use_speaker_boost": True,
            "speed": 1.0 if speed is None else speed,
        },
    }
    response = _send(
        "POST",
        f"/text-to-speech/{voice}",
        api_key,
        "ElevenLabs API error",
        params={"output_format": config.ELEVENLABS_OUTPUT_FORMAT},
        headers=_headers(api_key, json_body=True),
        json=payload,
    )
    return response.content


def speech_to_text(audio, filename, language, api_key, content_type="application/octet-stream"):
    """Transcribes with scribe_v1. language is a two-letter code, sent as ISO 639-3."""
    if not audio:
        raise ValueError("Audio file is required")

    response = _send(
        "POST",
        "/speech-to-text",
        api_key,
        "STT Error",
        headers=_headers(api_key),
        files={"file": (filename or "audio.webm", audio, content_type)},
        data={
            "model_id": config.ELEVENLABS_STT_MODEL,
            "language_code": config.ISO_639_3_CODES.get(language, "eng"),
        },
    )
    return response.json()


def clone_voice(audio, filename, name, api_key, description="", content_type="application/octet-stream"):
    if not audio or not name:
        raise ValueError("Audio file and voice name are required")

    response = _send(
        "POST",
        "/voices/add",
        api_key,
        "ElevenLabs API error",
        headers=_headers(api_key),
        files={"files": (filename or "sample", audio, content_type)},
        data={"name": name, "description": description or ""},
    )
    return response.json()


def create_dubbing(video, filename, api_key, source_lang="en", target_lang="km", name=None,
                   content_type="video/mp4"):
    if not video:
        raise ValueError("Video file is required")

    logger.info(f"Starting dubbing: {source_lang} -> {target_lang}")
    response = _send(
        "POST",
        "/dubbing",
        api_key,
        "ElevenLabs API error",
        headers=_headers(api_key),
        files={"file": (filename or "video.mp4", video, content_type)},
        data={
            "source_lang": source_lang,
            "target_lang": target_lang,
            "name": name or DEFAULT_DUBBING_NAME,
            "watermark": "false",
        },
    )
    result = response.json()
    logger.info(f"Dubbing job created: {result}")
    return result


def get_dubbing_status(dubbing_id, api_key):
    if not dubbing_id:
        raise ValueError("dubbing_id is required")
    response = _send("GET", f"/dubbing/{dubbing_id}", api_key, "Failed to get dubbing status",
                     headers=_headers(api_key))
    return response.json()


def download_dubbed_audio(dubbing_id, language_code, api_key):
    if not dubbing_id or not language_code:
        raise ValueError("dubbing_id and language_code are required")
    response = _send("GET", f"/dubbing/{dubbing_id}/audio/{language_code}", api_key,
                     "Failed to download dubbed audio", headers=_headers(api_key))
    return response.content
