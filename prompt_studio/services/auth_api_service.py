"""Business logic handlers for auth/account APIs."""

import re

from prompt_studio.errors import PromptStudioError


EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6


def profile_payload(app_ctx, profile):
    payload = profile.to_dict()
    payload.pop('created_at', None)
    payload['is_admin'] = app_ctx.is_admin(profile)
    payload['view'] = 'admin' if payload['is_admin'] else app_ctx.auth_service.home_view_for(profile)
    return payload


def _read_credentials(request):
    data = request.get_json(silent=True) or {}
    email = str(data.get('email', '') or '').strip()
    password = str(data.get('password', '') or '')
    return email, password


def _start_session(app_ctx, profile):
    app_ctx.session[app_ctx.auth_service.SESSION_UID_KEY] = profile.id
    store = app_ctx.sessions.open(profile)
    return app_ctx.jsonify({'user': profile_payload(app_ctx, store.profile)})


def login(app_ctx, request):
    email, password = _read_credentials(request)
    if not email or not password:
        return app_ctx.jsonify({'error': 'Email and password are required.'}), 400

    client_key = app_ctx.normalize_rate_limit_key_part(request.remote_addr, fallback='anon_ip')
    allowed, retry_after = app_ctx.check_rate_limit(key=f"login:{client_key}", limit=20, window_seconds=60)
    if not allowed:
        app_ctx.log_rate_limit_hit('login', retry_after)
        return app_ctx.build_rate_limited_response('Too many sign-in attempts. Please wait.', retry_after)

    try:
        profile = app_ctx.identity.login(email, password)
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    except Exception as e:
        app_ctx.logger.error(f"Login error for {email}: {e}")
        return app_ctx.jsonify({'error': 'Could not sign in. Please try again.'}), 500
    app_ctx.logger.info(f"User signed in: {profile.id}")
    return _start_session(app_ctx, profile)


def register(app_ctx, request):
    email, password = _read_credentials(request)
    if not EMAIL_RE.match(email):
        return app_ctx.jsonify({'error': 'Please enter a valid email address.'}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return app_ctx.jsonify({'error': f"Password must be at least {MIN_PASSWORD_LENGTH} characters."}), 400

    referral_code = app_ctx.referral_service.peek_referral(app_ctx.session)
    try:
        profile = app_ctx.identity.register(email, password, referral_code=referral_code)
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    except Exception as e:
        app_ctx.logger.error(f"Registration error for {email}: {e}")
        return app_ctx.jsonify({'error': 'Could not create your account. Please try again.'}), 500

    app_ctx.referral_service.consume_referral(app_ctx.session)
    app_ctx.logger.info(f"User registered: {profile.id} referred_by={referral_code or '-'}")
    return _start_session(app_ctx, profile)


def logout(app_ctx, request):
    uid = app_ctx.session.pop(app_ctx.auth_service.SESSION_UID_KEY, None)
    if uid:
        app_ctx.sessions.close(uid)
        try:
            app_ctx.identity.logout(uid)
        except Exception as e:
            app_ctx.logger.info(f"Identity logout failed for {uid}: {e}")
    return app_ctx.jsonify({'ok': True})


def get_me(app_ctx, request):
    store = app_ctx.current_store()
    if store is None:
        return app_ctx.jsonify({'error': 'Please sign in to continue.'}), 401
    if str(request.args.get('refresh', '') or '').lower() in {'1', 'true', 'yes'}:
        try:
            store.refresh()
        except PromptStudioError as e:
            return app_ctx.error_response(e)
    return app_ctx.jsonify({'user': profile_payload(app_ctx, store.profile)})
