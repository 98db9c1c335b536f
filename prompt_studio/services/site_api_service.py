"""Handlers for the public site surface: landing payload, health, announcement banner."""

from prompt_studio.services import announcement_service, prompt_registry


def index(app_ctx, request):
    return app_ctx.jsonify({
        'app': 'prompt-studio',
        'referral_code': app_ctx.referral_service.peek_referral(app_ctx.session),
        'signed_in': bool(app_ctx.current_uid()),
    })


def healthz(app_ctx, request):
    return app_ctx.jsonify({
        'ok': True,
        'identity_backend': type(app_ctx.identity).__name__,
        'payment_backend': type(app_ctx.payment_backend).__name__,
        'payments_configured': bool(app_ctx.payment_backend.is_configured()),
        'generation_enabled': bool(app_ctx.generation.available),
        'prompts': prompt_registry.get_prompt_metadata(),
    })


def get_announcement(app_ctx, request):
    dismissed_id = request.cookies.get(announcement_service.DISMISSED_COOKIE_NAME, '')
    return app_ctx.jsonify({
        'announcement': announcement_service.visible_announcement(app_ctx.settings, dismissed_id),
    })


def dismiss_announcement(app_ctx, request):
    current = announcement_service.get_announcement(app_ctx.settings)
    if current is None:
        return app_ctx.jsonify({'ok': True, 'dismissed_id': None})
    response = app_ctx.jsonify({'ok': True, 'dismissed_id': current['id']})
    response.set_cookie(
        announcement_service.DISMISSED_COOKIE_NAME,
        current['id'],
        max_age=announcement_service.DISMISSED_COOKIE_MAX_AGE,
        httponly=True,
        secure=bool(request.is_secure),
        samesite='Lax',
        path='/',
    )
    return response
