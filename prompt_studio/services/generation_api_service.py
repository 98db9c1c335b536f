"""Business logic handlers for credit-gated generation APIs.

Each handler validates its inputs, spends the feature's cost optimistically,
then calls the generation service. A failed generation keeps the spent
credits; the response carries the remaining balance so the client can render
it next to the error.
"""

from prompt_studio.errors import PromptStudioError
from prompt_studio.services import generation_service as gen
from prompt_studio.services import prompt_registry


def _bad_request(app_ctx, message):
    return app_ctx.jsonify({'error': message}), 400


def _read_image(payload, label):
    try:
        return gen.ImageInput.from_payload(payload)
    except ValueError as exc:
        raise ValueError(f"{label}: {exc}") from exc


def _read_images(items, label, max_items=6):
    if not isinstance(items, list) or not items:
        raise ValueError(f"Please upload at least one {label.lower()}.")
    return [_read_image(item, label) for item in items[:max_items]]


def _language(data):
    code = str(data.get('language', prompt_registry.DEFAULT_LANGUAGE) or '').strip().lower()
    return code if code in prompt_registry.LANGUAGE_NAMES else prompt_registry.DEFAULT_LANGUAGE


def run_paid_generation(app_ctx, feature, cost, action):
    """Gate ``action`` on sign-in and credits, spend ``cost``, then run it."""
    store = app_ctx.current_store()
    if store is None:
        return app_ctx.jsonify({'error': 'Please sign in to continue.'}), 401

    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"generation:{app_ctx.normalize_rate_limit_key_part(store.uid, fallback='anon_uid')}",
        limit=app_ctx.CONFIG.generation_rate_limit_max_requests,
        window_seconds=app_ctx.CONFIG.generation_rate_limit_window_seconds,
    )
    if not allowed:
        app_ctx.log_rate_limit_hit('generation', retry_after)
        return app_ctx.build_rate_limited_response('Too many generation requests. Please wait a moment.', retry_after)

    if not app_ctx.generation.available:
        return app_ctx.jsonify({'error': 'AI generation is not configured on this server.'}), 503

    if cost > 0:
        mutation = store.spend_credit(cost)
        if not mutation.ok:
            return app_ctx.jsonify({
                'error': f"You need {cost} credit{'s' if cost > 1 else ''} for this action. Please buy more credits.",
                'reason': mutation.reason,
                'required': cost,
                'credits': mutation.value,
            }), 402

    try:
        result = action()
    except PromptStudioError as e:
        app_ctx.logger.info(f"Generation '{feature}' failed for {store.uid}: {e.message}")
        return app_ctx.jsonify({'error': e.message, 'credits': store.credits}), e.status_code
    except Exception as e:
        app_ctx.logger.error(f"Unexpected generation error '{feature}' for {store.uid}: {e}")
        return app_ctx.jsonify({'error': 'An unknown error occurred.', 'credits': store.credits}), 500

    payload = dict(result)
    payload['cost'] = cost
    payload['credits'] = store.credits
    return app_ctx.jsonify(payload)


def get_options(app_ctx, request):
    return app_ctx.jsonify({
        'languages': prompt_registry.LANGUAGE_NAMES,
        'image_models': list(gen.IMAGE_MODELS),
        'video_models': list(gen.VIDEO_MODELS),
        'supported_video_models': list(gen.SUPPORTED_VIDEO_MODELS),
        'aspect_ratios': list(gen.ASPECT_RATIOS),
        'voices': [{'id': voice_id, 'name': name} for voice_id, name in gen.SPEECH_VOICES.items()],
        'speech_max_characters': gen.SPEECH_MAX_CHARACTERS,
        'costs': dict(gen.FEATURE_COSTS),
        'enabled': bool(app_ctx.generation.available),
    })


def video_prompt(app_ctx, request):
    data = request.get_json(silent=True) or {}
    try:
        influencer = _read_image(data.get('influencer_image'), 'Influencer image')
        products = _read_images(data.get('product_images'), 'Product image')
    except ValueError as exc:
        return _bad_request(app_ctx, str(exc))
    language = _language(data)
    return run_paid_generation(
        app_ctx,
        'video_prompt',
        gen.FEATURE_COSTS['video_prompt'],
        lambda: {'prompt': app_ctx.generation.generate_video_prompt(influencer, products, language)},
    )


def product_ad_prompt(app_ctx, request):
    data = request.get_json(silent=True) or {}
    try:
        products = _read_images(data.get('product_images'), 'Product image')
    except ValueError as exc:
        return _bad_request(app_ctx, str(exc))
    language = _language(data)
    return run_paid_generation(
        app_ctx,
        'product_ad_prompt',
        gen.FEATURE_COSTS['product_ad_prompt'],
        lambda: {'prompt': app_ctx.generation.generate_product_ad_prompt(products, language)},
    )


def influencer_prompt(app_ctx, request):
    data = request.get_json(silent=True) or {}
    actions = str(data.get('actions', '') or '').strip()
    if not actions:
        return _bad_request(app_ctx, 'Please describe what the influencer should do.')
    try:
        influencer = _read_image(data.get('influencer_image'), 'Influencer image')
    except ValueError as exc:
        return _bad_request(app_ctx, str(exc))
    language = _language(data)
    return run_paid_generation(
        app_ctx,
        'influencer_only_prompt',
        gen.FEATURE_COSTS['influencer_only_prompt'],
        lambda: {'prompt': app_ctx.generation.generate_influencer_only_prompt(influencer, actions, language)},
    )


def consistency_check(app_ctx, request):
    data = request.get_json(silent=True) or {}
    prompt = str(data.get('prompt', '') or '').strip()
    if not prompt:
        return _bad_request(app_ctx, 'Please provide a prompt to audit.')
    return run_paid_generation(
        app_ctx,
        'consistency_check',
        gen.FEATURE_COSTS['consistency_check'],
        lambda: {'result': app_ctx.generation.test_prompt_consistency(prompt)},
    )


def generate_image(app_ctx, request):
    data = request.get_json(silent=True) or {}
    prompt = str(data.get('prompt', '') or '').strip()
    if not prompt:
        return _bad_request(app_ctx, 'Please enter a prompt to generate an image.')
    model = str(data.get('model', gen.MODEL_IMAGEN) or gen.MODEL_IMAGEN).strip()
    if model not in gen.IMAGE_MODELS:
        return _bad_request(app_ctx, f"Unsupported image model: {model}")
    if model == 'grok-imagine':
        return _bad_request(app_ctx, 'Grok Imagine model is not yet integrated.')
    aspect_ratio = str(data.get('aspect_ratio', '1:1') or '1:1')
    if aspect_ratio not in gen.ASPECT_RATIOS:
        return _bad_request(app_ctx, f"Unsupported aspect ratio: {aspect_ratio}")
    try:
        number_of_images = int(data.get('number_of_images', 1) or 1)
    except (TypeError, ValueError):
        return _bad_request(app_ctx, 'number_of_images must be a number.')
    number_of_images = max(1, min(number_of_images, gen.MAX_IMAGES_PER_REQUEST))
    cost = gen.image_cost(model, number_of_images)
    return run_paid_generation(
        app_ctx,
        'image',
        cost,
        lambda: {'images': app_ctx.generation.generate_image(prompt, cost, model, aspect_ratio)},
    )


def generate_video(app_ctx, request):
    data = request.get_json(silent=True) or {}
    prompt = str(data.get('prompt', '') or '').strip()
    if not prompt:
        return _bad_request(app_ctx, 'Please enter a prompt to generate a video.')
    model = str(data.get('model', 'gemini-veo') or 'gemini-veo').strip()
    if model not in gen.VIDEO_MODELS:
        return _bad_request(app_ctx, f"Unsupported video model: {model}")
    if model not in gen.SUPPORTED_VIDEO_MODELS:
        return _bad_request(app_ctx, f"Model '{model}' is not supported for video generation yet.")
    aspect_ratio = str(data.get('aspect_ratio', '9:16') or '9:16')
    if aspect_ratio not in gen.ASPECT_RATIOS:
        return _bad_request(app_ctx, f"Unsupported aspect ratio: {aspect_ratio}")
    return run_paid_generation(
        app_ctx,
        'video',
        gen.FEATURE_COSTS['video'],
        lambda: {'video': app_ctx.generation.generate_video(prompt, model, aspect_ratio)},
    )


def generate_speech(app_ctx, request):
    data = request.get_json(silent=True) or {}
    text = str(data.get('text', '') or '').strip()
    if not text:
        return _bad_request(app_ctx, 'Please enter some text to convert to speech.')
    if len(text) > gen.SPEECH_MAX_CHARACTERS:
        return _bad_request(app_ctx, f"Text is limited to {gen.SPEECH_MAX_CHARACTERS} characters.")
    voice = str(data.get('voice', 'Kore') or 'Kore')
    if voice not in gen.SPEECH_VOICES:
        return _bad_request(app_ctx, f"Unknown voice: {voice}")
    return run_paid_generation(
        app_ctx,
        'speech',
        gen.FEATURE_COSTS['speech'],
        lambda: {'audio': app_ctx.generation.generate_speech(text, voice)},
    )


def generate_storyboard(app_ctx, request):
    data = request.get_json(silent=True) or {}
    idea = str(data.get('idea', '') or data.get('prompt', '') or '').strip()
    if not idea:
        return _bad_request(app_ctx, 'Please enter a video idea.')
    return run_paid_generation(
        app_ctx,
        'storyboard',
        gen.FEATURE_COSTS['storyboard'],
        lambda: {'scenes': app_ctx.generation.generate_storyboard(idea)},
    )


def storyboard_scene_image(app_ctx, request):
    data = request.get_json(silent=True) or {}
    image_prompt = str(data.get('image_prompt', '') or '').strip()
    if not image_prompt:
        return _bad_request(app_ctx, 'Scene image prompt is required.')
    return run_paid_generation(
        app_ctx,
        'storyboard_image',
        gen.FEATURE_COSTS['storyboard_image'],
        lambda: {'images': app_ctx.generation.generate_image(image_prompt, 1, gen.MODEL_IMAGEN, '16:9')},
    )


def storyboard_video(app_ctx, request):
    data = request.get_json(silent=True) or {}
    scenes = gen.sanitize_storyboard({'scenes': data.get('scenes')})
    if not scenes:
        return _bad_request(app_ctx, 'Please generate a storyboard first.')
    video_prompt_text = gen.storyboard_video_prompt(scenes)
    return run_paid_generation(
        app_ctx,
        'storyboard_video',
        gen.FEATURE_COSTS['video'],
        lambda: {'video': app_ctx.generation.generate_video(video_prompt_text, 'gemini-veo', '16:9', 8)},
    )
