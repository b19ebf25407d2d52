"""
Google Generative Language helpers.

REST (requests): video-to-Khmer translation, image watermark removal and
Khmer voice transcription/translation. google-genai client: text
translation, speech-to-text and uploaded-video understanding.
"""

import base64
import io
import logging
import re
import threading
import time

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

import config
from errors import NoResultError, ProviderFetchError, RateLimitedError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Google AI Studio"

TRANSLATOR_SYSTEM_PROMPT = (
    "You are a professional translator. Translate the text accurately while preserving "
    "the meaning, tone, and nuances. Only output the translated text, nothing else."
)

KHMER_TO_OTHER = "khmer-to-other"
OTHER_TO_KHMER = "other-to-khmer"
NO_SPEECH_MARKER = "[No speech detected]"

DATA_URL_RE = re.compile(r"^data:(image/\w+);base64,(.+)$", re.S)
SOURCE_RE = re.compile(r"SOURCE:\s*(.+?)(?=\nTRANSLATION:|$)", re.S)
TRANSLATION_RE = re.compile(r"TRANSLATION:\s*(.+?)$", re.S)

_clients = {}
_clients_lock = threading.Lock()


def get_client(api_key):
    """Returns a cached genai.Client for the given key."""
    with _clients_lock:
        client = _clients.get(api_key)
        if client is None:
            client = genai.Client(api_key=api_key)
            _clients[api_key] = client
            logger.info(f"Gemini client initialized (key {api_key[:8]}...)")
        return client


def build_video_prompt(include_timestamps=False):
    if not include_timestamps:
        return config.KHMER_TRANSLATION_PROMPT
    # Timestamp hint goes at the end of the format list
    marker = "- Use proper Khmer grammar and natural phrasing"
    return config.KHMER_TRANSLATION_PROMPT.replace(
        marker, f"{marker}\n{config.KHMER_TIMESTAMP_INSTRUCTION}"
    )


def extract_candidate_text(data):
    """Reads candidates[0].content.parts[0].text, or None when absent."""
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None


def generate_content_rest(model, parts, api_key, generation_config=None,
                          timeout=config.PROVIDER_TIMEOUT_SECONDS, rate_limit_markers=()):
    """
    POSTs one generateContent request and returns the decoded JSON body.

    Raises:
        RateLimitedError: 429, or an error body containing one of rate_limit_markers
        ProviderFetchError: transport failure or any other non-2xx status
    """
    url = f"{config.GEMINI_API_BASE}/models/{model}:generateContent"
    payload = {"contents": [{"parts": parts}]}
    if generation_config:
        payload["generationConfig"] = generation_config

    try:
        response = requests.post(url, params={"key": api_key}, json=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.error(f"Google AI exception: {e}")
        raise ProviderFetchError(str(e)) from e

    if not response.ok:
        logger.error(f"Google AI error: {response.status_code} {response.text}")
        if response.status_code == 429 or any(m in response.text for m in rate_limit_markers):
            raise RateLimitedError("Rate limit exceeded. Please try again later.")
        raise ProviderFetchError(f"Google AI: {response.status_code}", provider_status=response.status_code)

    try:
        return response.json()
    except ValueError as e:
        raise ProviderFetchError(f"Google AI returned invalid JSON: {e}") from e


def translate_video_to_khmer(video_base64, api_key, include_timestamps=False, mime_type="video/mp4",
                             timeout=config.PROVIDER_TIMEOUT_SECONDS):
    """
    Sends a base64 video to Gemini and returns the Khmer translation text.

    Raises:
        RateLimitedError: provider answered 429
        ProviderFetchError: transport failure or any other non-2xx status
        NoResultError: response had no generated text
    """
    parts = [
        {"inlineData": {"mimeType": mime_type, "data": video_base64}},
        {"text": build_video_prompt(include_timestamps)},
    ]
    data = generate_content_rest(
        config.GEMINI_VIDEO_MODEL, parts, api_key, dict(config.GEMINI_GENERATION_CONFIG), timeout=timeout
    )

    translation = extract_candidate_text(data)
    if not translation:
        raise NoResultError("No translation generated")
    return translation


def remove_image_watermark(image, api_key):
    """
    Asks the image model for a cleaned copy of a data URL or bare base64 image.

    Returns {"success": True, "image": data_url} or, when the model only
    answered in text, {"success": False, "message": text}.
    """
    if not image:
        raise ValueError("No image provided")

    match = DATA_URL_RE.match(image)
    mime_type, data = (match.group(1), match.group(2)) if match else ("image/jpeg", image)

    logger.info("Processing image watermark removal with Google AI Studio...")
    parts = [
        {"text": config.IMAGE_WATERMARK_PROMPT},
        {"inline_data": {"mime_type": mime_type, "data": data}},
    ]
    result = generate_content_rest(
        config.GEMINI_IMAGE_MODEL, parts, api_key, {"responseModalities": ["TEXT", "IMAGE"]}
    )

    candidates = result.get("candidates")
    if not candidates:
        logger.error(f"No candidates in response: {result}")
        raise NoResultError("No response from AI model")

    out_parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in out_parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline:
            out_mime = inline.get("mimeType") or inline.get("mime_type")
            logger.info("Successfully processed image - watermark removed")
            return {"success": True, "image": f"data:{out_mime};base64,{inline['data']}"}

    text = next((p["text"] for p in out_parts if p.get("text")), None)
    logger.info(f"No image in response. Content: {text}")
    return {
        "success": False,
        "message": text or "The AI could not process this image. Please try with a different image.",
    }


def _audio_mime_from_name(filename):
    name = (filename or "").lower()
    for ext, mime in ((".mp3", "audio/mp3"), (".wav", "audio/wav"), (".ogg", "audio/ogg")):
        if name.endswith(ext):
            return mime
    return "audio/webm"


def _khmer_speech_prompt(mode, source_lang, target_lang):
    if mode == KHMER_TO_OTHER:
        target = config.LANGUAGE_NAMES.get(target_lang, target_lang)
        intro = (
            "You are a Khmer language expert and translator. Listen to this Khmer audio and:\n"
            "1. First, transcribe the Khmer speech exactly as spoken (in Khmer script)\n"
            f"2. Then translate the Khmer text to {target}"
        )
        labels = f"SOURCE: [the Khmer transcription here]\nTRANSLATION: [the {target} translation here]"
    else:
        source = config.LANGUAGE_NAMES.get(source_lang, source_lang)
        intro = (
            f"You are a multilingual translator specializing in Khmer. Listen to this {source} audio and:\n"
            f"1. First, transcribe the {source} speech exactly as spoken\n"
            "2. Then translate the text to Khmer (Cambodian language using Khmer script)"
        )
        labels = (f"SOURCE: [the {source} transcription here]\n"
                  "TRANSLATION: [the Khmer translation here in Khmer script ខ្មែរ]")
    return (
        f"{intro}\n\n"
        "Format your response EXACTLY like this (use these exact labels):\n"
        f"{labels}\n\n"
        "If there is no speech or the audio is unclear, respond with:\n"
        f"SOURCE: {NO_SPEECH_MARKER}\n"
        f"TRANSLATION: {NO_SPEECH_MARKER}"
    )


def split_source_translation(answer):
    """Splits a SOURCE:/TRANSLATION: answer. Without labels both sides get the raw text."""
    source_match = SOURCE_RE.search(answer)
    translation_match = TRANSLATION_RE.search(answer)
    source_text = source_match.group(1).strip() if source_match else ""
    translated_text = translation_match.group(1).strip() if translation_match else ""
    if not source_text and not translated_text:
        return answer, answer
    return source_text, translated_text


def translate_khmer_speech(audio_bytes, filename, mode, source_lang, target_lang, api_key):
    """Transcribes and translates speech to or from Khmer in one call. Returns (source, translation)."""
    if not audio_bytes:
        raise ValueError("Audio file is required")
    if mode not in (KHMER_TO_OTHER, OTHER_TO_KHMER):
        raise ValueError(f"Unknown mode: {mode}")

    khmer_to_other = mode == KHMER_TO_OTHER
    logger.info(
        "Khmer Voice Translate: "
        + (f"Khmer -> {target_lang}" if khmer_to_other else f"{source_lang} -> Khmer")
    )

    parts = [
        {"text": _khmer_speech_prompt(mode, source_lang, target_lang)},
        {"inlineData": {
            "mimeType": _audio_mime_from_name(filename),
            "data": base64.b64encode(audio_bytes).decode("ascii"),
        }},
    ]
    data = generate_content_rest(
        config.GEMINI_VIDEO_MODEL, parts, api_key, {"temperature": 0.2, "maxOutputTokens": 2000}
    )

    source_text, translated_text = split_source_translation(extract_candidate_text(data) or "")
    if not source_text or NO_SPEECH_MARKER in source_text:
        raise NoResultError("No Khmer speech detected in the audio" if khmer_to_other
                            else "No speech detected in the audio")
    return source_text, translated_text


def _api_error(e):
    """Maps a google-genai APIError onto our error kinds."""
    logger.error(f"Gemini API error: {e.code} {e.message}")
    if e.code == 429:
        return RateLimitedError("Rate limit exceeded. Please try again later.")
    if e.code == 402:
        return ProviderFetchError("Usage limit reached. Please add credits.", provider_status=402)
    return ProviderFetchError(f"AI API error: {e.code}", provider_status=e.code)


def _generate(api_key, contents, system_instruction=None, model=config.GEMINI_TEXT_MODEL, **config_kwargs):
    cfg = None
    if system_instruction or config_kwargs:
        cfg = types.GenerateContentConfig(system_instruction=system_instruction, **config_kwargs)
    try:
        resp = get_client(api_key).models.generate_content(model=model, contents=contents, config=cfg)
    except genai_errors.APIError as e:
        raise _api_error(e) from e
    return (resp.text or "").strip()


def translate_text(text, source_lang, target_lang, api_key):
    if not text:
        raise ValueError("No text provided")

    logger.info(f"Translating from {source_lang} to {target_lang}...")
    prompt = f"Translate the following text from {source_lang} to {target_lang}:\n\n{text}"
    translated = _generate(api_key, prompt, system_instruction=TRANSLATOR_SYSTEM_PROMPT)
    logger.info("Translation completed")
    return translated


def transcribe_audio(audio_bytes, mime_type, language, api_key):
    """Returns raw transcript text with "Speaker N:" labels and [MM:SS] stamps."""
    if not audio_bytes:
        raise ValueError("No audio file provided")

    if not mime_type or not mime_type.startswith("audio/"):
        mime_type = "audio/mp3"

    prompt = (
        "Transcribe this audio file accurately. Output ONLY the transcription text, nothing else. "
        "If there are multiple speakers, identify them as \"Speaker 1:\", \"Speaker 2:\", etc. "
        "Include timestamps in format [MM:SS] at the start of each speaker's segment if you can detect them. "
        f"Language hint: {language}"
    )
    contents = [prompt, types.Part.from_bytes(data=audio_bytes, mime_type=mime_type)]
    transcript = _generate(api_key, contents)
    logger.info("Transcription completed")
    return transcript


def analyze_video(video_bytes, file_name, mime_type, prompt, api_key,
                  poll_seconds=config.GEMINI_FILE_POLL_SECONDS, max_polls=config.GEMINI_FILE_MAX_POLLS):
    """
    Uploads a video through the Files API, waits for it to become ACTIVE and
    asks Gemini about it. The upload is deleted afterwards.
    """
    if not video_bytes:
        raise ValueError("No video file provided")
    if len(video_bytes) > config.VIDEO_UNDERSTANDING_MAX_BYTES:
        raise ValueError("Video file must be less than 10MB")

    mime_type = mime_type or "video/mp4"
    logger.info(f"Processing video: {file_name}, size: {len(video_bytes)}, type: {mime_type}")

    client = get_client(api_key)
    try:
        uploaded = client.files.upload(
            file=io.BytesIO(video_bytes),
            config=types.UploadFileConfig(mime_type=mime_type, display_name=file_name),
        )
    except genai_errors.APIError as e:
        raise _api_error(e) from e

    try:
        polls = 0
        while uploaded.state == types.FileState.PROCESSING and polls < max_polls:
            time.sleep(poll_seconds)
            uploaded = client.files.get(name=uploaded.name)
            polls += 1
            logger.info(f"File state: {uploaded.state} (attempt {polls})")

        if uploaded.state != types.FileState.ACTIVE:
            logger.error(f"File processing failed or timed out: {uploaded.state}")
            raise ProviderFetchError("Video processing timed out. Please try a shorter video.")

        analysis = _generate(
            api_key,
            [uploaded, prompt or config.DEFAULT_VIDEO_ANALYSIS_PROMPT],
            model=config.GEMINI_VIDEO_MODEL,
            temperature=0.7,
            max_output_tokens=8192,
        )
    finally:
        try:
            client.files.delete(name=uploaded.name)
        except genai_errors.APIError as e:
            logger.warning(f"Failed to clean up file {uploaded.name}: {e}")

    logger.info("Analysis complete")
    return analysis or "No analysis generated"
