"""
API tests through FastAPI's TestClient. Provider clients are patched.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

import database
from errors import ProviderFetchError, RateLimitedError


class TestHealth:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}


class TestStartup:

    def test_lifespan_loads_settings_from_env(self, monkeypatch, tmp_path):
        import server

        db_file = tmp_path / "startup.db"
        monkeypatch.setenv("GOOGLE_AI_STUDIO_API_KEY", "env-google-key")
        monkeypatch.setenv("STUDIO_DB_PATH", str(db_file))

        with TestClient(server.app) as client:
            assert server.app.state.settings.google_api_key == "env-google-key"
            assert server.app.state.settings.db_path == str(db_file)
            assert client.get("/api/health").status_code == 200
        assert db_file.exists()


class TestQueueRoutes:

    def test_enqueue_strips_data_url(self, client):
        res = client.post("/api/queue", json={
            "user_id": "u1",
            "file_name": "clip.mp4",
            "video_data": "data:video/mp4;base64,QUJD",
        })
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "pending"
        assert body["retry_count"] == 0
        assert "video_data" not in body
        assert database.get_queue_item(body["id"])["video_data"] == "QUJD"

    def test_enqueue_validation(self, client):
        res = client.post("/api/queue", json={"user_id": "u1", "file_name": "clip.mp4", "video_data": ""})
        assert res.status_code == 422

    def test_list_get_delete(self, client, make_item):
        mine = make_item("mine.mp4", user_id="u1")
        make_item("theirs.mp4", user_id="u2")

        items = client.get("/api/queue", params={"user_id": "u1"}).json()["items"]
        assert [i["id"] for i in items] == [mine]

        assert client.get(f"/api/queue/{mine}").json()["file_name"] == "mine.mp4"
        assert client.delete(f"/api/queue/{mine}").json() == {"status": "deleted", "id": mine}
        assert client.get(f"/api/queue/{mine}").status_code == 404
        assert client.delete(f"/api/queue/{mine}").status_code == 404

    def test_logs(self, client):
        item_id = client.post("/api/queue", json={
            "user_id": "u1", "file_name": "clip.mp4", "video_data": "QUJD",
        }).json()["id"]
        logs = client.get(f"/api/queue/{item_id}/logs").json()["logs"]
        assert len(logs) == 1
        assert logs[0].endswith("Queued")
        assert client.get("/api/queue/missing/logs").status_code == 404


class TestProcessQueue:

    def test_empty_queue(self, client):
        res = client.post("/api/queue/process")
        assert res.status_code == 200
        assert res.json() == {
            "message": "No pending items in queue",
            "processed": 0,
            "rateLimited": False,
            "remaining": 0,
        }

    def test_pass_with_rate_limit(self, client, make_item):
        for i in range(3):
            make_item(f"v{i}.mp4")

        outcomes = iter(["one", RateLimitedError("429")])

        def fake_translate(video_base64, api_key):
            assert api_key == "test-google-key"
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with patch("gemini_client.translate_video_to_khmer", side_effect=fake_translate):
            res = client.post("/api/queue/process")

        assert res.status_code == 200
        assert res.json() == {
            "message": "Processed 1 videos",
            "processed": 1,
            "rateLimited": True,
            "remaining": 2,
        }

    def test_missing_key_is_fatal(self, client, settings, make_item):
        make_item()
        settings.google_api_key = None
        res = client.post("/api/queue/process")
        assert res.status_code == 500
        assert res.json() == {
            "error": "GOOGLE_AI_STUDIO_API_KEY not configured",
            "kind": "configuration-missing",
        }


class TestVideoToKhmer:

    def test_requires_video(self, client):
        res = client.post("/api/video-to-khmer", json={"fileName": "clip.mp4"})
        assert res.status_code == 400
        assert res.json() == {"error": "No video provided"}

    def test_success(self, client):
        with patch("gemini_client.translate_video_to_khmer", return_value="សួស្តី") as translate:
            res = client.post("/api/video-to-khmer", json={"videoBase64": "QUJD", "fileName": "clip.mp4"})

        assert res.json() == {
            "success": True,
            "khmerTranslation": "សួស្តី",
            "fileName": "clip.mp4",
            "provider": "Google AI Studio",
        }
        assert translate.call_args.kwargs["include_timestamps"] is True

    def test_rate_limited_passthrough(self, client):
        with patch("gemini_client.translate_video_to_khmer",
                   side_effect=RateLimitedError("Rate limit exceeded. Please try again later.")):
            res = client.post("/api/video-to-khmer", json={"videoBase64": "QUJD"})
        assert res.status_code == 429
        assert res.json()["kind"] == "rate-limited"

    def test_provider_status_is_relayed(self, client):
        with patch("gemini_client.translate_video_to_khmer",
                   side_effect=ProviderFetchError("Google AI: 403", provider_status=403)):
            res = client.post("/api/video-to-khmer", json={"videoBase64": "QUJD"})
        assert res.status_code == 403
        assert res.json() == {"error": "Google AI: 403", "kind": "fetch-error"}

    def test_transport_failure_is_500(self, client):
        with patch("gemini_client.translate_video_to_khmer", side_effect=ProviderFetchError("connection refused")):
            res = client.post("/api/video-to-khmer", json={"videoBase64": "QUJD"})
        assert res.status_code == 500


class TestTextAndSpeech:

    def test_translate(self, client):
        with patch("gemini_client.translate_text", return_value="ជំរាបសួរ") as translate:
            res = client.post("/api/translate", json={"text": "hello", "sourceLang": "en", "targetLang": "km"})
        assert res.json() == {"translatedText": "ជំរាបសួរ"}
        translate.assert_called_once_with("hello", "en", "km", "test-google-key")

    def test_stt_returns_segments(self, client):
        transcript = "[00:00] Speaker 1: hello\n[00:07] Speaker 2: hi"
        with patch("gemini_client.transcribe_audio", return_value=transcript):
            res = client.post(
                "/api/stt",
                files={"audio": ("a.webm", b"\x00\x01", "audio/webm")},
                data={"language": "km"},
            )

        body = res.json()
        assert res.status_code == 200
        assert body["text"] == transcript
        assert body["language_code"] == "km"
        assert body["words"] == [
            {"text": "hello", "start": 0, "end": 5, "speaker": "Speaker 1"},
            {"text": "hi", "start": 7, "end": 12, "speaker": "Speaker 2"},
        ]

    def test_stt_parse_error_is_distinct(self, client):
        with patch("gemini_client.transcribe_audio", return_value="[0:99] broken"):
            res = client.post("/api/stt", files={"audio": ("a.mp3", b"\x00", "audio/mpeg")})
        assert res.status_code == 502
        assert res.json()["kind"] == "transcript-parse"

    def test_tts_returns_audio(self, client):
        with patch("elevenlabs_client.text_to_speech", return_value=b"MP3DATA") as tts:
            res = client.post("/api/tts", json={"text": "hello", "voiceId": "v1", "speed": 1.1})
        assert res.status_code == 200
        assert res.headers["content-type"] == "audio/mpeg"
        assert res.content == b"MP3DATA"
        assert tts.call_args.kwargs["voice_id"] == "v1"

    def test_tts_missing_key(self, client, settings):
        settings.elevenlabs_api_key = ""
        res = client.post("/api/tts", json={"text": "hello"})
        assert res.status_code == 500
        assert res.json()["error"] == "ELEVENLABS_API_KEY not configured"

    def test_tts_provider_error(self, client):
        with patch("elevenlabs_client.text_to_speech",
                   side_effect=ProviderFetchError("ElevenLabs API error: bad voice", provider_status=400)):
            res = client.post("/api/tts", json={"text": "hello"})
        assert res.status_code == 400
        assert res.json() == {"error": "ElevenLabs API error: bad voice", "kind": "fetch-error"}


class TestDubbingAndVoices:

    def test_voice_clone(self, client):
        with patch("elevenlabs_client.clone_voice", return_value={"voice_id": "new"}) as clone:
            res = client.post(
                "/api/voice-clone",
                files={"audio": ("me.wav", b"WAV", "audio/wav")},
                data={"name": "Me"},
            )
        assert res.json() == {"voice_id": "new"}
        assert clone.call_args.args[:3] == (b"WAV", "me.wav", "Me")

    def test_create_dubbing(self, client):
        with patch("elevenlabs_client.create_dubbing", return_value={"dubbing_id": "d1"}) as dub:
            res = client.post("/api/dubbing", files={"video": ("v.mp4", b"MP4", "video/mp4")})
        assert res.json() == {"dubbing_id": "d1"}
        assert dub.call_args.kwargs["source_lang"] == "en"
        assert dub.call_args.kwargs["target_lang"] == "km"

    def test_dubbing_status(self, client):
        with patch("elevenlabs_client.get_dubbing_status", return_value={"status": "dubbed"}):
            assert client.get("/api/dubbing/d1").json() == {"status": "dubbed"}

    def test_dubbing_audio_download(self, client):
        with patch("elevenlabs_client.download_dubbed_audio", return_value=b"MP3"):
            res = client.get("/api/dubbing/d1/audio/km")
        assert res.content == b"MP3"
        assert res.headers["content-disposition"] == 'attachment; filename="dubbed_km.mp3"'


class TestKlingRoute:

    def test_generation_summary(self, client):
        with patch("kling_client.create_video_task", return_value="task-9"):
            res = client.post("/api/video-gen/kling", json={
                "prompt": "a cat surfing",
                "mode": "image-to-video",
                "imageBase64": "IMG",
                "duration": 10,
                "aspectRatio": "9:16",
            })
        body = res.json()
        assert res.status_code == 200
        assert body["taskId"] == "task-9"
        assert body["settings"]["resolution"] == "1080x1920 (Vertical/Mobile)"
        assert body["message"].startswith("Video generation started. Animation")

    def test_rejects_unknown_mode(self, client):
        res = client.post("/api/video-gen/kling", json={"prompt": "x", "mode": "sound-to-video"})
        assert res.status_code == 422


class TestImageAndVideoUnderstanding:

    def test_remove_watermark_requires_image(self, client):
        res = client.post("/api/image/remove-watermark", json={})
        assert res.status_code == 400
        assert res.json() == {"error": "No image provided"}

    def test_remove_watermark(self, client):
        cleaned = {"success": True, "image": "data:image/png;base64,CLEAN"}
        with patch("gemini_client.remove_image_watermark", return_value=cleaned) as remove:
            res = client.post("/api/image/remove-watermark", json={"imageBase64": "data:image/png;base64,DIRTY"})
        assert res.json() == cleaned
        remove.assert_called_once_with("data:image/png;base64,DIRTY", "test-google-key")

    def test_video_understanding(self, client):
        with patch("gemini_client.analyze_video", return_value="A cat.") as analyze:
            res = client.post(
                "/api/video-understanding",
                files={"video": ("cat.mp4", b"MP4DATA", "video/mp4")},
                data={"prompt": "What animal?"},
            )
        assert res.json() == {"success": True, "analysis": "A cat.", "fileName": "cat.mp4", "fileSize": 7}
        assert analyze.call_args.args == (b"MP4DATA", "cat.mp4", "video/mp4", "What animal?", "test-google-key")

    def test_video_understanding_too_large(self, client):
        with patch("gemini_client.analyze_video", side_effect=ValueError("Video file must be less than 10MB")):
            res = client.post("/api/video-understanding", files={"video": ("big.mp4", b"X", "video/mp4")})
        assert res.status_code == 400
        assert res.json()["detail"] == "Video file must be less than 10MB"


class TestVoiceTranslation:

    def test_speech_to_speech(self, client):
        with patch("elevenlabs_client.speech_to_text", return_value={"text": " hello "}) as stt, \
                patch("gemini_client.translate_text", return_value="hola") as translate, \
                patch("elevenlabs_client.text_to_speech", return_value=b"MP3") as tts:
            res = client.post(
                "/api/speech-to-speech",
                files={"audio": ("rec.webm", b"WEBM", "audio/webm")},
                data={"sourceLanguage": "en", "targetLanguage": "es", "voiceId": "v9"},
            )

        assert res.status_code == 200
        assert res.json() == {
            "success": True,
            "transcribedText": "hello",
            "translatedText": "hola",
            "audioBase64": "TVAz",
            "sourceLanguage": "en",
            "targetLanguage": "es",
        }
        assert stt.call_args.args[2:] == ("en", "test-elevenlabs-key")
        translate.assert_called_once_with("hello", "English", "Spanish", "test-google-key")
        assert tts.call_args.kwargs["voice_id"] == "v9"

    def test_speech_to_speech_without_speech(self, client):
        with patch("elevenlabs_client.speech_to_text", return_value={"text": "  "}), \
                patch("elevenlabs_client.text_to_speech") as tts:
            res = client.post("/api/speech-to-speech", files={"audio": ("rec.webm", b"WEBM", "audio/webm")})
        assert res.status_code == 500
        assert res.json() == {"error": "No speech detected in the audio", "kind": "no-result"}
        tts.assert_not_called()

    def test_speech_to_speech_needs_both_keys(self, client, settings):
        settings.google_api_key = None
        res = client.post("/api/speech-to-speech", files={"audio": ("rec.webm", b"WEBM", "audio/webm")})
        assert res.status_code == 500
        assert res.json()["kind"] == "configuration-missing"

    def test_khmer_voice_translate(self, client):
        with patch("gemini_client.translate_khmer_speech", return_value=("សួស្តី", "Hello")) as khmer, \
                patch("elevenlabs_client.text_to_speech", return_value=b"MP3") as tts:
            res = client.post("/api/khmer-voice-translate", files={"audio": ("kh.wav", b"WAV", "audio/wav")})

        assert res.json() == {
            "success": True,
            "sourceText": "សួស្តី",
            "translatedText": "Hello",
            "audioBase64": "TVAz",
            "mode": "khmer-to-other",
            "sourceLanguage": "km",
            "targetLanguage": "en",
        }
        assert khmer.call_args.args == (b"WAV", "kh.wav", "khmer-to-other", "en", "en", "test-google-key")
        assert tts.call_args.args == ("Hello", "test-elevenlabs-key")

    def test_other_to_khmer_reports_khmer_target(self, client):
        with patch("gemini_client.translate_khmer_speech", return_value=("bonjour", "ជំរាបសួរ")), \
                patch("elevenlabs_client.text_to_speech", return_value=b"MP3"):
            res = client.post(
                "/api/khmer-voice-translate",
                files={"audio": ("fr.mp3", b"MP3", "audio/mpeg")},
                data={"mode": "other-to-khmer", "sourceLanguage": "fr"},
            )
        body = res.json()
        assert (body["sourceLanguage"], body["targetLanguage"]) == ("fr", "km")

    def test_khmer_voice_translate_bad_mode(self, client):
        with patch("gemini_client.translate_khmer_speech", side_effect=ValueError("Unknown mode: sideways")):
            res = client.post(
                "/api/khmer-voice-translate",
                files={"audio": ("kh.wav", b"WAV", "audio/wav")},
                data={"mode": "sideways"},
            )
        assert res.status_code == 400


class TestVeoRoute:

    def test_production_plan(self, client):
        with patch("veo_client.create_production_plan", return_value="PLAN") as plan:
            res = client.post("/api/video-gen/veo", json={"prompt": "waves", "duration": 6, "aspectRatio": "16:9"})

        body = res.json()
        assert res.status_code == 200
        assert body["productionPlan"] == "PLAN"
        assert body["status"] == "ready"
        assert len(body["keyframes"]) == 3
        assert plan.call_args.args == ("waves", "text-to-video", 6, "16:9", "test-google-key")

    def test_rate_limited(self, client):
        with patch("veo_client.create_production_plan", side_effect=RateLimitedError("Rate limit exceeded.")):
            res = client.post("/api/video-gen/veo", json={"prompt": "waves"})
        assert res.status_code == 429
