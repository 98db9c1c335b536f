"""Gemini-backed generation features.

Every method either returns its result or raises ``GenerationError`` with a
message that can be shown to the user. Credit checks and spending happen in the
API layer before these methods run.
"""

import base64
import io
import json
import time
import wave
from dataclasses import dataclass

from google.genai import types

from prompt_studio.errors import ConfigurationError, GenerationError
from prompt_studio.logging_config import logger
from prompt_studio.services import prompt_registry


MODEL_TEXT = 'gemini-2.5-flash'
MODEL_NANO_BANANA = 'gemini-2.5-flash-image'
MODEL_IMAGEN = 'imagen-4.0-generate-001'
MODEL_TTS = 'gemini-2.5-flash-preview-tts'
MODEL_VEO = 'veo-3.1-fast-generate-preview'

IMAGE_MODELS = ('imagen-4.0-generate-001', 'nano-banana', 'grok-imagine')
VIDEO_MODELS = ('gemini-veo', 'openai-sora', 'openai-sora-2')
SUPPORTED_VIDEO_MODELS = ('gemini-veo',)
ASPECT_RATIOS = ('1:1', '9:16', '16:9', '4:3', '3:4')
SPEECH_VOICES = {
    'Kore': 'Kore (Female, Calm)',
    'Puck': 'Puck (Male, Energetic)',
    'Charon': 'Charon (Male, Deep)',
    'Zephyr': 'Zephyr (Female, Gentle)',
    'Fenrir': 'Fenrir (Male, Authoritative)',
}
SPEECH_MAX_CHARACTERS = 1000
SPEECH_SAMPLE_RATE = 24000
MAX_IMAGES_PER_REQUEST = 4
VIDEO_POLL_SECONDS = 10
VIDEO_MAX_WAIT_SECONDS = 15 * 60

FEATURE_COSTS = {
    'video_prompt': 1,
    'product_ad_prompt': 1,
    'influencer_only_prompt': 1,
    'consistency_check': 0,
    'speech': 1,
    'storyboard': 1,
    'storyboard_image': 1,
    'video': 5,
}


def image_cost(model, number_of_images):
    if model == 'nano-banana':
        return 1
    return max(1, int(number_of_images))


@dataclass(frozen=True)
class ImageInput:
    data: bytes
    mime_type: str

    @classmethod
    def from_payload(cls, payload):
        """Build from ``{'data': <base64 or data URL>, 'mime_type': ...}``."""
        if not isinstance(payload, dict):
            raise ValueError('Image must be an object with data and mime_type.')
        raw = str(payload.get('data', '') or '').strip()
        mime_type = str(payload.get('mime_type', '') or payload.get('mimeType', '') or '').strip()
        if raw.startswith('data:') and ',' in raw:
            header, raw = raw.split(',', 1)
            if not mime_type:
                mime_type = header[5:].split(';', 1)[0]
        if not raw:
            raise ValueError('Image data is empty.')
        if not mime_type.startswith('image/'):
            raise ValueError('Only image uploads are supported.')
        try:
            data = base64.b64decode(raw, validate=True)
        except (ValueError, TypeError) as exc:
            raise ValueError('Image data is not valid base64.') from exc
        return cls(data=data, mime_type=mime_type)

    def to_part(self):
        return types.Part.from_bytes(data=self.data, mime_type=self.mime_type)


def extract_json_payload(raw_text):
    if not raw_text:
        return None
    text = raw_text.strip()
    if text.startswith('```'):
        lines = text.splitlines()
        if len(lines) >= 3 and lines[0].startswith('```') and lines[-1].strip() == '```':
            text = '\n'.join(lines[1:-1]).strip()
    start = text.find('{')
    if start == -1:
        return None
    decoder = json.JSONDecoder()
    try:
        parsed, _ = decoder.raw_decode(text[start:])
        return parsed
    except json.JSONDecodeError:
        end = text.rfind('}')
        if end == -1 or end <= start:
            return None
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            return None


def pcm_to_wav(pcm_bytes, sample_rate=SPEECH_SAMPLE_RATE, channels=1, sample_width=2):
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm_bytes)
    return buffer.getvalue()


def to_data_url(data, mime_type):
    if isinstance(data, str):
        encoded = data
    else:
        encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"


def sanitize_storyboard(parsed, max_scenes=8):
    scenes = (parsed or {}).get('scenes') if isinstance(parsed, dict) else None
    if not isinstance(scenes, list):
        return []
    cleaned = []
    for index, item in enumerate(scenes[:max_scenes], start=1):
        if not isinstance(item, dict):
            continue
        description = str(item.get('description', '') or '').strip()
        image_prompt = str(item.get('imagePrompt', '') or item.get('image_prompt', '') or '').strip()
        if not description or not image_prompt:
            continue
        cleaned.append({'scene': len(cleaned) + 1, 'description': description, 'image_prompt': image_prompt})
    return cleaned


def storyboard_video_prompt(scenes):
    return '\n'.join(f"Scene {scene['scene']}: {scene['description']}" for scene in scenes)


class GenerationService:
    def __init__(self, client, *, sleep=time.sleep, poll_seconds=VIDEO_POLL_SECONDS,
                 max_wait_seconds=VIDEO_MAX_WAIT_SECONDS):
        self.client = client
        self.sleep = sleep
        self.poll_seconds = poll_seconds
        self.max_wait_seconds = max_wait_seconds

    @property
    def available(self):
        return self.client is not None

    def _require_client(self):
        if self.client is None:
            raise ConfigurationError('AI generation is not configured on this server.')
        return self.client

    def _generate_text(self, parts, feature):
        client = self._require_client()
        try:
            response = client.models.generate_content(
                model=MODEL_TEXT,
                contents=[types.Content(role='user', parts=parts)],
            )
        except Exception as e:
            logger.error(f"Gemini {feature} error: {e}")
            raise GenerationError(f"An error occurred while generating the prompt: {e}") from e
        text = (response.text or '').strip()
        if not text:
            raise GenerationError('The model returned an empty response. Please try again.')
        return text

    # --- prompts ---

    def generate_video_prompt(self, influencer_image, product_images, language='en'):
        if not product_images:
            raise GenerationError('Please upload at least one product image.')
        parts = [influencer_image.to_part()]
        parts.extend(image.to_part() for image in product_images)
        parts.append(types.Part.from_text(text=prompt_registry.render_prompt('influencer_product', language)))
        return self._generate_text(parts, 'video prompt')

    def generate_product_ad_prompt(self, product_images, language='en'):
        if not product_images:
            raise GenerationError('Please upload at least one product image.')
        parts = [image.to_part() for image in product_images]
        parts.append(types.Part.from_text(text=prompt_registry.render_prompt('product_ad', language)))
        return self._generate_text(parts, 'product ad prompt')

    def generate_influencer_only_prompt(self, influencer_image, actions, language='en'):
        actions = str(actions or '').strip()
        if not actions:
            raise GenerationError('Please describe what the influencer should do.')
        parts = [
            influencer_image.to_part(),
            types.Part.from_text(text=prompt_registry.render_prompt('influencer_only', language, actions=actions)),
        ]
        return self._generate_text(parts, 'influencer-only prompt')

    def test_prompt_consistency(self, prompt):
        """Audit a generated prompt. Failures come back as an inconsistent result."""
        client = self._require_client()
        schema = types.Schema(
            type=types.Type.OBJECT,
            properties={
                'consistent': types.Schema(
                    type=types.Type.BOOLEAN,
                    description='Is the prompt free of ambiguities that could cause visual deviation from a reference image?',
                ),
                'reason': types.Schema(
                    type=types.Type.STRING,
                    description='A brief explanation for the consistency rating. If inconsistent, identify the ambiguous part.',
                ),
            },
            required=['consistent', 'reason'],
        )
        try:
            response = client.models.generate_content(
                model=MODEL_TEXT,
                contents=f"Audit this prompt:\n\n---\n\n{prompt}",
                config=types.GenerateContentConfig(
                    system_instruction=prompt_registry.get_prompt_template('consistency_audit'),
                    response_mime_type='application/json',
                    response_schema=schema,
                ),
            )
        except Exception as e:
            logger.error(f"Gemini consistency check error: {e}")
            return {'consistent': False, 'reason': f"Failed to test consistency: {e}"}
        parsed = extract_json_payload(response.text)
        if not isinstance(parsed, dict) or 'consistent' not in parsed:
            return {'consistent': False, 'reason': 'Failed to test consistency: unreadable audit response.'}
        return {'consistent': bool(parsed.get('consistent')), 'reason': str(parsed.get('reason', '') or '')}

    # --- media ---

    def generate_image(self, prompt, number_of_images=1, model=MODEL_IMAGEN, aspect_ratio='1:1'):
        client = self._require_client()
        if model == 'grok-imagine':
            raise GenerationError('Grok Imagine model is not yet integrated.')
        if model not in IMAGE_MODELS:
            raise GenerationError(f"Unsupported image model: {model}")
        try:
            if model == 'nano-banana':
                response = client.models.generate_content(
                    model=MODEL_NANO_BANANA,
                    contents=[types.Content(role='user', parts=[types.Part.from_text(text=prompt)])],
                    config=types.GenerateContentConfig(response_modalities=['IMAGE']),
                )
                for candidate in response.candidates or []:
                    for part in (candidate.content.parts if candidate.content else None) or []:
                        if part.inline_data and part.inline_data.data:
                            return [to_data_url(part.inline_data.data, part.inline_data.mime_type or 'image/png')]
                raise GenerationError('Nano Banana model did not return an image.')

            response = client.models.generate_images(
                model=MODEL_IMAGEN,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=max(1, min(int(number_of_images), MAX_IMAGES_PER_REQUEST)),
                    output_mime_type='image/jpeg',
                    aspect_ratio=aspect_ratio,
                ),
            )
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"Image generation error ({model}): {e}")
            raise GenerationError(f"An error occurred while generating the image: {e}") from e

        images = [
            to_data_url(item.image.image_bytes, 'image/jpeg')
            for item in (response.generated_images or [])
            if item.image is not None and item.image.image_bytes
        ]
        if not images:
            raise GenerationError('No images were generated by the API.')
        return images

    def generate_video(self, prompt, model='gemini-veo', aspect_ratio='9:16', duration_seconds=None):
        client = self._require_client()
        if model not in SUPPORTED_VIDEO_MODELS:
            raise GenerationError(f"Model '{model}' is not supported for video generation yet.")
        config_kwargs = {'number_of_videos': 1, 'resolution': '720p', 'aspect_ratio': aspect_ratio}
        if duration_seconds:
            config_kwargs['duration_seconds'] = int(duration_seconds)
        try:
            operation = client.models.generate_videos(
                model=MODEL_VEO,
                prompt=prompt,
                config=types.GenerateVideosConfig(**config_kwargs),
            )
            waited = 0
            while not operation.done:
                if waited >= self.max_wait_seconds:
                    raise GenerationError('Video generation timed out. Please try again.')
                self.sleep(self.poll_seconds)
                waited += self.poll_seconds
                operation = client.operations.get(operation)
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"Video generation error: {e}")
            if 'Requested entity was not found' in str(e):
                raise GenerationError('API key error. Please check the server Gemini key and try again.') from e
            raise GenerationError(f"An error occurred while generating the video: {e}") from e

        result = operation.response or operation.result
        videos = (result.generated_videos if result is not None else None) or []
        if not videos or videos[0].video is None:
            raise GenerationError('Video generation completed, but no video was returned.')
        video = videos[0].video
        try:
            video_bytes = video.video_bytes or client.files.download(file=video)
        except Exception as e:
            logger.error(f"Video download error: {e}")
            raise GenerationError(f"Failed to fetch video file: {e}") from e
        return to_data_url(video_bytes, video.mime_type or 'video/mp4')

    def generate_speech(self, text, voice='Kore'):
        client = self._require_client()
        text = str(text or '').strip()
        if not text:
            raise GenerationError('Please enter some text to convert to speech.')
        if len(text) > SPEECH_MAX_CHARACTERS:
            raise GenerationError(f"Text is limited to {SPEECH_MAX_CHARACTERS} characters.")
        if voice not in SPEECH_VOICES:
            raise GenerationError(f"Unknown voice: {voice}")
        try:
            response = client.models.generate_content(
                model=MODEL_TTS,
                contents=text,
                config=types.GenerateContentConfig(
                    response_modalities=['AUDIO'],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                        ),
                    ),
                ),
            )
            audio = response.candidates[0].content.parts[0].inline_data.data
        except (AttributeError, IndexError, TypeError) as e:
            raise GenerationError('No audio was returned by the API.') from e
        except Exception as e:
            logger.error(f"Speech generation error: {e}")
            raise GenerationError(f"An error occurred while generating speech: {e}") from e
        if not audio:
            raise GenerationError('No audio was returned by the API.')
        if isinstance(audio, str):
            audio = base64.b64decode(audio)
        return to_data_url(pcm_to_wav(audio), 'audio/wav')

    def generate_storyboard(self, idea):
        idea = str(idea or '').strip()
        if not idea:
            raise GenerationError('Please enter a video idea.')
        text = self._generate_text(
            [types.Part.from_text(text=prompt_registry.render_prompt('storyboard', idea=idea))],
            'storyboard',
        )
        scenes = sanitize_storyboard(extract_json_payload(text))
        if not scenes:
            raise GenerationError('Could not read a storyboard from the model response. Please try again.')
        return scenes
