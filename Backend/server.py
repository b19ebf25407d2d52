"""
AI Studio API - FastAPI application proxying generative-AI providers and
draining the video translation queue.

Run locally:
    uvicorn server:app --reload --port 8002

Environment:
    GOOGLE_AI_STUDIO_API_KEY  - Gemini key (GEMINI_API_KEY also accepted)
    ELEVENLABS_API_KEY        - ElevenLabs key
    KLING_API_KEY             - Kling AI key
    STUDIO_DB_PATH            - SQLite file for the video queue
    ALLOWED_ORIGINS           - Comma separated CORS origins
"""

import base64
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

import config
import database
import elevenlabs_client
import gemini_client
import kling_client
import queue_worker
import transcript_parser
import veo_client
from errors import ConfigError, NoResultError, ProviderError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("studio.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = config.load_settings()
    app.state.settings = settings
    database.init_db(settings.db_path)
    logger.info("AI Studio API started")
    yield
    database.close_db_cleanup()
    logger.info("Shutting down AI Studio API")


app = FastAPI(title="AI Studio API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.load_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_settings(request: Request) -> config.Settings:
    return request.app.state.settings


# --- Request Models ---

class EnqueueRequest(BaseModel):
    user_id: str
    file_name: str
    video_data: str = Field(..., min_length=1)
    max_retries: int = Field(default=config.DEFAULT_MAX_RETRIES, ge=1)


class VideoToKhmerRequest(BaseModel):
    videoBase64: Optional[str] = None
    fileName: Optional[str] = None


class TTSRequest(BaseModel):
    text: str
    voiceId: Optional[str] = None
    speed: Optional[float] = None
    stability: Optional[float] = None
    similarityBoost: Optional[float] = None


class TranslateRequest(BaseModel):
    text: str
    sourceLang: str = "auto"
    targetLang: str


class KlingVideoRequest(BaseModel):
    prompt: str
    negativePrompt: str = ""
    mode: Literal["text-to-video", "image-to-video"] = "text-to-video"
    imageBase64: Optional[str] = None
    duration: int = Field(default=5, ge=1)
    aspectRatio: str = "16:9"
    generateAudio: bool = True


class ImageWatermarkRequest(BaseModel):
    imageBase64: Optional[str] = None


class VeoVideoRequest(BaseModel):
    prompt: str
    mode: Literal["text-to-video", "image-to-video"] = "text-to-video"
    imageBase64: Optional[str] = None
    duration: int = Field(default=8, ge=1)
    aspectRatio: str = "16:9"
    generateAudio: bool = True


# --- Exception Handlers ---

@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc), "kind": exc.kind})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error(f"Provider error on {request.url.path}: {exc}")
    # Relay the provider's own error status when it gave one
    status_code = getattr(exc, "provider_status", None) or exc.status_code
    return JSONResponse(status_code=status_code, content={"error": str(exc), "kind": exc.kind})


# --- Health ---

@app.get("/api/health")
async def health_check():
    return {"status": "ok"}

# --- Video Queue ---

@app.post("/api/queue/process")
def process_queue(settings: config.Settings = Depends(get_settings)):
    """Runs one drain pass over the pending video queue."""
    try:
        result = queue_worker.drain_queue(settings)
    except sqlite3.Error as e:
        logger.error(f"Error fetching queue: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return result.to_response()


@app.post("/api/queue")
def enqueue_video(request: EnqueueRequest):
    video_data = request.video_data
    # Accept full data URLs from FileReader.readAsDataURL
    if video_data.startswith("data:") and "," in video_data:
        video_data = video_data.split(",", 1)[1]

    item_id = database.create_queue_item(
        user_id=request.user_id,
        file_name=request.file_name,
        video_data=video_data,
        max_retries=request.max_retries,
    )
    database.log_event(item_id, "Queued")
    logger.info(f"[Queue {item_id}] Added {request.file_name} for user {request.user_id}")

    item = database.get_queue_item(item_id)
    item.pop("video_data", None)
    return item


@app.get("/api/queue")
def list_queue(user_id: Optional[str] = None):
    return {"items": database.get_queue_items(user_id)}


@app.get("/api/queue/{item_id}")
def get_queue_item(item_id: str):
    item = database.get_queue_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Queue item not found")
    item.pop("video_data", None)
    return item


@app.delete("/api/queue/{item_id}")
def delete_queue_item(item_id: str):
    if not database.delete_queue_item(item_id):
        raise HTTPException(status_code=404, detail="Queue item not found")
    return {"status": "deleted", "id": item_id}


@app.get("/api/queue/{item_id}/logs")
def get_queue_logs(item_id: str):
    if not database.get_queue_item(item_id):
        raise HTTPException(status_code=404, detail="Queue item not found")
    return {"logs": database.get_logs(item_id)}

# --- Google AI ---

@app.post("/api/video-to-khmer")
def video_to_khmer(request: VideoToKhmerRequest, settings: config.Settings = Depends(get_settings)):
    if not request.videoBase64:
        return JSONResponse(status_code=400, content={"error": "No video provided"})

    logger.info(f"Processing video: {request.fileName}")
    api_key = settings.require("google_api_key")
    translation = gemini_client.translate_video_to_khmer(request.videoBase64, api_key, include_timestamps=True)
    logger.info("Google AI translation successful")

    return {
        "success": True,
        "khmerTranslation": translation,
        "fileName": request.fileName,
        "provider": gemini_client.PROVIDER_NAME,
    }


@app.post("/api/translate")
def translate_text(request: TranslateRequest, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("google_api_key")
    try:
        translated = gemini_client.translate_text(request.text, request.sourceLang, request.targetLang, api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"translatedText": translated}


@app.post("/api/stt")
def speech_to_text(
    audio: UploadFile = File(...),
    language: str = Form("en"),
    settings: config.Settings = Depends(get_settings),
):
    api_key = settings.require("google_api_key")
    audio_bytes = audio.file.read()
    logger.info(f"Speech-to-text: {audio.filename} ({len(audio_bytes)} bytes, {audio.content_type})")

    try:
        transcript = gemini_client.transcribe_audio(audio_bytes, audio.content_type, language, api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    segments = transcript_parser.parse_transcript(transcript)

    response = {"text": transcript, "language_code": language}
    if segments:
        response["words"] = [s.to_dict() for s in segments]
    return response


@app.post("/api/image/remove-watermark")
def remove_image_watermark(request: ImageWatermarkRequest, settings: config.Settings = Depends(get_settings)):
    if not request.imageBase64:
        return JSONResponse(status_code=400, content={"error": "No image provided"})

    api_key = settings.require("google_api_key")
    return gemini_client.remove_image_watermark(request.imageBase64, api_key)


@app.post("/api/video-understanding")
def video_understanding(
    video: UploadFile = File(...),
    prompt: str = Form(config.DEFAULT_VIDEO_ANALYSIS_PROMPT),
    settings: config.Settings = Depends(get_settings),
):
    api_key = settings.require("google_api_key")
    video_bytes = video.file.read()
    try:
        analysis = gemini_client.analyze_video(video_bytes, video.filename, video.content_type, prompt, api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "success": True,
        "analysis": analysis,
        "fileName": video.filename,
        "fileSize": len(video_bytes),
    }


@app.post("/api/khmer-voice-translate")
def khmer_voice_translate(
    audio: UploadFile = File(...),
    mode: str = Form(gemini_client.KHMER_TO_OTHER),
    sourceLanguage: str = Form("en"),
    targetLanguage: str = Form("en"),
    voiceId: Optional[str] = Form(None),
    settings: config.Settings = Depends(get_settings),
):
    """Khmer <-> other language voice translation: Gemini transcribes and translates, ElevenLabs speaks."""
    google_key = settings.require("google_api_key")
    elevenlabs_key = settings.require("elevenlabs_api_key")

    try:
        source_text, translated_text = gemini_client.translate_khmer_speech(
            audio.file.read(), audio.filename, mode, sourceLanguage, targetLanguage, google_key
        )
        speech = elevenlabs_client.text_to_speech(translated_text, elevenlabs_key, voice_id=voiceId)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Khmer Voice Translation completed successfully")
    khmer_to_other = mode == gemini_client.KHMER_TO_OTHER
    return {
        "success": True,
        "sourceText": source_text,
        "translatedText": translated_text,
        "audioBase64": base64.b64encode(speech).decode("ascii"),
        "mode": mode,
        "sourceLanguage": "km" if khmer_to_other else sourceLanguage,
        "targetLanguage": targetLanguage if khmer_to_other else "km",
    }

# --- ElevenLabs ---

@app.post("/api/tts")
def text_to_speech(request: TTSRequest, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("elevenlabs_api_key")
    try:
        audio = elevenlabs_client.text_to_speech(
            request.text,
            api_key,
            voice_id=request.voiceId,
            speed=request.speed,
            stability=request.stability,
            similarity_boost=request.similarityBoost,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(content=audio, media_type="audio/mpeg")


@app.post("/api/voice-clone")
def voice_clone(
    audio: UploadFile = File(...),
    name: str = Form(...),
    description: str = Form(""),
    settings: config.Settings = Depends(get_settings),
):
    api_key = settings.require("elevenlabs_api_key")
    try:
        return elevenlabs_client.clone_voice(
            audio.file.read(),
            audio.filename,
            name,
            api_key,
            description=description,
            content_type=audio.content_type or "application/octet-stream",
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/dubbing")
def create_dubbing(
    video: UploadFile = File(...),
    source_lang: str = Form("en"),
    target_lang: str = Form("km"),
    name: Optional[str] = Form(None),
    settings: config.Settings = Depends(get_settings),
):
    api_key = settings.require("elevenlabs_api_key")
    try:
        return elevenlabs_client.create_dubbing(
            video.file.read(),
            video.filename,
            api_key,
            source_lang=source_lang,
            target_lang=target_lang,
            name=name,
            content_type=video.content_type or "video/mp4",
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/dubbing/{dubbing_id}")
def dubbing_status(dubbing_id: str, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("elevenlabs_api_key")
    return elevenlabs_client.get_dubbing_status(dubbing_id, api_key)


@app.get("/api/dubbing/{dubbing_id}/audio/{language_code}")
def dubbing_audio(dubbing_id: str, language_code: str, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("elevenlabs_api_key")
    audio = elevenlabs_client.download_dubbed_audio(dubbing_id, language_code, api_key)
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Content-Disposition": f'attachment; filename="dubbed_{language_code}.mp3"'},
    )


@app.post("/api/speech-to-speech")
def speech_to_speech(
    audio: UploadFile = File(...),
    sourceLanguage: str = Form("en"),
    targetLanguage: str = Form("es"),
    voiceId: Optional[str] = Form(None),
    settings: config.Settings = Depends(get_settings),
):
    """ElevenLabs STT, Gemini translation, then ElevenLabs TTS in the target language."""
    elevenlabs_key = settings.require("elevenlabs_api_key")
    google_key = settings.require("google_api_key")
    logger.info(f"Speech-to-Speech: {sourceLanguage} -> {targetLanguage}")

    try:
        stt = elevenlabs_client.speech_to_text(
            audio.file.read(),
            audio.filename,
            sourceLanguage,
            elevenlabs_key,
            content_type=audio.content_type or "application/octet-stream",
        )
        transcribed = (stt.get("text") or "").strip()
        if not transcribed:
            raise NoResultError("No speech detected in the audio")

        translated = gemini_client.translate_text(
            transcribed,
            config.LANGUAGE_NAMES.get(sourceLanguage, sourceLanguage),
            config.LANGUAGE_NAMES.get(targetLanguage, targetLanguage),
            google_key,
        )
        if not translated:
            raise NoResultError("Translation failed - no output received")

        speech = elevenlabs_client.text_to_speech(translated, elevenlabs_key, voice_id=voiceId)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Speech-to-Speech completed successfully")
    return {
        "success": True,
        "transcribedText": transcribed,
        "translatedText": translated,
        "audioBase64": base64.b64encode(speech).decode("ascii"),
        "sourceLanguage": sourceLanguage,
        "targetLanguage": targetLanguage,
    }

# --- Kling AI ---

@app.post("/api/video-gen/kling")
def kling_video_gen(request: KlingVideoRequest, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("kling_api_key")
    logger.info(f"Using Kling API Key: {api_key[:8]}...")
    try:
        task_id = kling_client.create_video_task(
            request.prompt,
            request.mode,
            request.duration,
            request.aspectRatio,
            api_key,
            negative_prompt=request.negativePrompt,
            image_base64=request.imageBase64,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return kling_client.build_generation_summary(
        task_id,
        request.prompt,
        request.negativePrompt,
        request.mode,
        request.duration,
        request.aspectRatio,
        generate_audio=request.generateAudio,
    )

# --- Veo (Gemini-planned) ---

@app.post("/api/video-gen/veo")
def veo_video_gen(request: VeoVideoRequest, settings: config.Settings = Depends(get_settings)):
    api_key = settings.require("google_api_key")
    try:
        plan = veo_client.create_production_plan(
            request.prompt,
            request.mode,
            request.duration,
            request.aspectRatio,
            api_key,
            image_base64=request.imageBase64,
            generate_audio=request.generateAudio,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return veo_client.build_plan_response(
        plan, request.prompt, request.mode, request.duration, request.aspectRatio, request.generateAudio
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
