"""
Configuration constants and runtime settings for the AI studio backend
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from errors import ConfigError

# Queue Draining
QUEUE_BATCH_SIZE = 5               # Max items taken per pass
QUEUE_SELECT_MAX_RETRIES = 3       # Items with retry_count >= this are never selected
DEFAULT_MAX_RETRIES = 3            # Per-item ceiling stored on the row
RATE_LIMIT_MESSAGE = "Rate limited - will retry automatically"

# Providers
PROVIDER_TIMEOUT_SECONDS = 120
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_VIDEO_MODEL = "gemini-2.0-flash"
GEMINI_TEXT_MODEL = "gemini-2.5-flash"
GEMINI_IMAGE_MODEL = "gemini-2.0-flash-exp-image-generation"
GEMINI_FILE_POLL_SECONDS = 1
GEMINI_FILE_MAX_POLLS = 30         # ~30s for an upload to become ACTIVE
VIDEO_UNDERSTANDING_MAX_BYTES = 10 * 1024 * 1024
GEMINI_GENERATION_CONFIG = {
    "temperature": 0.3,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 8192,
}
ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"
ELEVENLABS_DEFAULT_VOICE = "EXAVITQu4vr4xnSDxMaL"  # Sarah
ELEVENLABS_TTS_MODEL = "eleven_multilingual_v2"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"
ELEVENLABS_STT_MODEL = "scribe_v1"
KLING_API_BASE = "https://api.klingai.com/v1"
KLING_MODEL = "kling-v1"
KLING_DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, distorted, watermark, text, logo, artifacts"
VEO_FPS = 24

# Transcripts
DEFAULT_SEGMENT_SECONDS = 5

# Paths
DB_FILE_NAME = "studio.db"
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

KHMER_TRANSLATION_PROMPT = """You are a professional translator specializing in Khmer (Cambodian) language.

Please analyze this video and:
1. Listen to all speech/dialogue in the video
2. Transcribe the speech
3. Translate everything to Khmer (ភាសាខ្មែរ)

Provide the output in this format:
- First, give a brief description of the video content in Khmer
- Then provide the full translation of all spoken content in Khmer script
- Use proper Khmer grammar and natural phrasing

If there is no speech in the video, describe what is happening visually in Khmer.

Respond ONLY in Khmer script (ភាសាខ្មែរ), not romanized Khmer."""

KHMER_TIMESTAMP_INSTRUCTION = "- Include timestamps if possible (e.g., [0:00-0:10])"

IMAGE_WATERMARK_PROMPT = (
    "Remove all watermarks, logos, text overlays, and any visible branding from this image. "
    "Generate a clean version of the image without any watermarks while preserving the original "
    "content, colors, composition, and quality. Output only the cleaned image."
)

DEFAULT_VIDEO_ANALYSIS_PROMPT = "Analyze this video and describe what you see in detail."

# Two-letter codes used by the front-end -> display names for prompts
LANGUAGE_NAMES = {
    "en": "English", "es": "Spanish", "fr": "French", "de": "German", "it": "Italian",
    "pt": "Portuguese", "ru": "Russian", "zh": "Chinese (Mandarin)", "ja": "Japanese",
    "ko": "Korean", "ar": "Arabic", "hi": "Hindi", "th": "Thai", "vi": "Vietnamese",
    "km": "Khmer", "id": "Indonesian", "ms": "Malay", "nl": "Dutch", "pl": "Polish",
    "tr": "Turkish", "uk": "Ukrainian", "sv": "Swedish", "da": "Danish", "no": "Norwegian",
    "fi": "Finnish", "cs": "Czech", "ro": "Romanian", "hu": "Hungarian", "el": "Greek",
    "he": "Hebrew", "bn": "Bengali", "ta": "Tamil", "te": "Telugu", "mr": "Marathi",
    "gu": "Gujarati",
}

# ElevenLabs speech-to-text wants ISO 639-3
ISO_639_3_CODES = {
    "en": "eng", "es": "spa", "fr": "fra", "de": "deu", "it": "ita", "pt": "por",
    "ru": "rus", "zh": "cmn", "ja": "jpn", "ko": "kor", "ar": "ara", "hi": "hin",
    "th": "tha", "vi": "vie", "km": "khm", "id": "ind", "ms": "msa", "nl": "nld",
    "pl": "pol", "tr": "tur", "uk": "ukr", "sv": "swe", "da": "dan", "no": "nor",
    "fi": "fin", "cs": "ces", "ro": "ron", "hu": "hun", "el": "ell", "he": "heb",
    "bn": "ben", "ta": "tam", "te": "tel", "mr": "mar", "gu": "guj",
}

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"


@dataclass
class Settings:
    """API keys and deployment settings, created once at startup."""

    google_api_key: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None
    kling_api_key: Optional[str] = None
    db_path: str = os.path.join(BASE_DIR, DB_FILE_NAME)
    allowed_origins: List[str] = field(default_factory=lambda: DEFAULT_ALLOWED_ORIGINS.split(","))

    ENV_NAMES = {
        "google_api_key": "GOOGLE_AI_STUDIO_API_KEY",
        "elevenlabs_api_key": "ELEVENLABS_API_KEY",
        "kling_api_key": "KLING_API_KEY",
    }

    def require(self, name: str) -> str:
        """Return a configured key or raise ConfigError naming the env var."""
        value = getattr(self, name)
        if not value:
            raise ConfigError(f"{self.ENV_NAMES.get(name, name)} not configured")
        return value


def load_allowed_origins() -> List[str]:
    """CORS origins, needed before the app starts so read on their own."""
    load_dotenv()
    origins = os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)
    return [o.strip() for o in origins.split(",") if o.strip()]


def load_settings() -> Settings:
    load_dotenv()

    return Settings(
        # GEMINI_API_KEY kept as a fallback for older .env files
        google_api_key=os.getenv("GOOGLE_AI_STUDIO_API_KEY") or os.getenv("GEMINI_API_KEY"),
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
        kling_api_key=os.getenv("KLING_API_KEY"),
        db_path=os.getenv("STUDIO_DB_PATH", os.path.join(BASE_DIR, DB_FILE_NAME)),
        allowed_origins=load_allowed_origins(),
    )
