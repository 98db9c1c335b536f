import base64
import json
from types import SimpleNamespace

import pytest

from prompt_studio.errors import ConfigurationError, GenerationError
from prompt_studio.services import generation_service as gen
from prompt_studio.services.generation_service import GenerationService, ImageInput


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


class _FakeModels:
    def __init__(self):
        self.calls = []
        self.text = "**Video Concept:** ..."
        self.raise_on_content = None

    def generate_content(self, **kwargs):
        self.calls.append(("generate_content", kwargs))
        if self.raise_on_content is not None:
            raise self.raise_on_content
        if kwargs["model"] == gen.MODEL_TTS:
            inline = SimpleNamespace(data=b"\x00\x01" * 8, mime_type="audio/L16")
            part = SimpleNamespace(inline_data=inline)
            return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])
        return SimpleNamespace(text=self.text, candidates=[])

    def generate_images(self, **kwargs):
        self.calls.append(("generate_images", kwargs))
        image = SimpleNamespace(image=SimpleNamespace(image_bytes=b"jpeg-bytes"))
        return SimpleNamespace(generated_images=[image] * kwargs["config"].number_of_images)

    def generate_videos(self, **kwargs):
        self.calls.append(("generate_videos", kwargs))
        return SimpleNamespace(done=False, response=None, result=None)


class _FakeOperations:
    def __init__(self, polls_until_done=2):
        self.polls = 0
        self.polls_until_done = polls_until_done

    def get(self, operation):
        self.polls += 1
        if self.polls < self.polls_until_done:
            return operation
        video = SimpleNamespace(video_bytes=b"mp4-bytes", mime_type="video/mp4")
        response = SimpleNamespace(generated_videos=[SimpleNamespace(video=video)])
        return SimpleNamespace(done=True, response=response, result=None)


@pytest.fixture()
def client():
    return SimpleNamespace(models=_FakeModels(), operations=_FakeOperations(), files=None)


@pytest.fixture()
def service(client):
    return GenerationService(client, sleep=lambda _seconds: None, poll_seconds=1, max_wait_seconds=5)


def _image():
    return ImageInput.from_payload({"data": PNG_B64, "mime_type": "image/png"})


def test_image_input_accepts_data_urls_and_rejects_non_images():
    image = ImageInput.from_payload({"data": f"data:image/webp;base64,{PNG_B64}"})
    assert image.mime_type == "image/webp"
    assert image.data == PNG_BYTES

    with pytest.raises(ValueError):
        ImageInput.from_payload({"data": PNG_B64, "mime_type": "application/pdf"})
    with pytest.raises(ValueError):
        ImageInput.from_payload({"data": "%%%", "mime_type": "image/png"})
    with pytest.raises(ValueError):
        ImageInput.from_payload("not-a-dict")


def test_unconfigured_service_raises_configuration_error():
    service = GenerationService(None)

    assert service.available is False
    with pytest.raises(ConfigurationError):
        service.generate_speech("hello")


def test_video_prompt_sends_all_images_and_language(service, client):
    prompt = service.generate_video_prompt(_image(), [_image(), _image()], "pt")

    assert prompt.startswith("**Video Concept:**")
    _name, kwargs = client.models.calls[0]
    parts = kwargs["contents"][0].parts
    assert len(parts) == 4
    assert "Portuguese (Brazil)" in parts[-1].text


def test_influencer_only_prompt_requires_actions(service):
    with pytest.raises(GenerationError):
        service.generate_influencer_only_prompt(_image(), "  ")


def test_empty_model_response_is_an_error(service, client):
    client.models.text = ""

    with pytest.raises(GenerationError):
        service.generate_product_ad_prompt([_image()])


def test_consistency_check_returns_parsed_verdict(service, client):
    client.models.text = '```json\n{"consistent": true, "reason": "Precise."}\n```'

    assert service.test_prompt_consistency("prompt") == {"consistent": True, "reason": "Precise."}


def test_consistency_check_failure_is_reported_as_inconsistent(service, client):
    client.models.raise_on_content = RuntimeError("quota exceeded")

    result = service.test_prompt_consistency("prompt")

    assert result["consistent"] is False
    assert "quota exceeded" in result["reason"]


def test_imagen_returns_one_data_url_per_image(service, client):
    images = service.generate_image("a red bicycle", 3, gen.MODEL_IMAGEN, "16:9")

    assert len(images) == 3
    assert all(image.startswith("data:image/jpeg;base64,") for image in images)
    _name, kwargs = client.models.calls[0]
    assert kwargs["config"].aspect_ratio == "16:9"


def test_grok_image_model_is_not_integrated(service):
    with pytest.raises(GenerationError):
        service.generate_image("a red bicycle", 1, "grok-imagine")


def test_video_polls_until_done(service, client):
    video = service.generate_video("a cat surfing", "gemini-veo", "16:9", 8)

    assert video == "data:video/mp4;base64," + base64.b64encode(b"mp4-bytes").decode("ascii")
    assert client.operations.polls == 2
    _name, kwargs = client.models.calls[0]
    assert kwargs["model"] == gen.MODEL_VEO
    assert kwargs["config"].duration_seconds == 8


def test_video_times_out(client):
    client.operations.polls_until_done = 100
    service = GenerationService(client, sleep=lambda _seconds: None, poll_seconds=1, max_wait_seconds=3)

    with pytest.raises(GenerationError):
        service.generate_video("a cat surfing")


def test_sora_video_model_is_not_supported(service):
    with pytest.raises(GenerationError):
        service.generate_video("a cat surfing", "openai-sora")


def test_speech_is_wrapped_as_wav(service):
    audio = service.generate_speech("Hello there", "Charon")

    assert audio.startswith("data:audio/wav;base64,")
    wav = base64.b64decode(audio.split(",", 1)[1])
    assert wav[:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"


def test_storyboard_is_sanitized(service, client):
    client.models.text = json.dumps({
        "scenes": [
            {"description": "Opening shot of the mug", "imagePrompt": "steaming mug, morning light"},
            {"description": "", "imagePrompt": "dropped"},
            {"description": "Logo reveal", "image_prompt": "logo on black"},
        ]
    })

    scenes = service.generate_storyboard("A coffee brand launch")

    assert scenes == [
        {"scene": 1, "description": "Opening shot of the mug", "image_prompt": "steaming mug, morning light"},
        {"scene": 2, "description": "Logo reveal", "image_prompt": "logo on black"},
    ]
    assert gen.storyboard_video_prompt(scenes) == "Scene 1: Opening shot of the mug\nScene 2: Logo reveal"


def test_unreadable_storyboard_is_an_error(service, client):
    client.models.text = "I cannot help with that."

    with pytest.raises(GenerationError):
        service.generate_storyboard("A coffee brand launch")


def test_feature_costs():
    assert gen.FEATURE_COSTS["video"] == 5
    assert gen.FEATURE_COSTS["speech"] == 1
    assert gen.image_cost(gen.MODEL_IMAGEN, 4) == 4
    assert gen.image_cost("nano-banana", 4) == 1
