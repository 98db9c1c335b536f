"""Business logic handlers for admin APIs."""

from concurrent.futures import TimeoutError as FutureTimeoutError

from prompt_studio.errors import PromptStudioError
from prompt_studio.models import UserRole
from prompt_studio.services import announcement_service, commission_service
from prompt_studio.backends.payments import PIX_KEY_SETTING


MAX_CREDIT_GRANT = 100000
MAX_PIX_KEY_LENGTH = 77
CREDIT_GRANT_TIMEOUT_SECONDS = 15


def _require_admin(app_ctx):
    store = app_ctx.current_store()
    if store is None:
        return None, (app_ctx.jsonify({'error': 'Unauthorized'}), 401)
    if not app_ctx.is_admin(store.profile):
        return None, (app_ctx.jsonify({'error': 'Forbidden'}), 403)
    return store, None


def _user_row(profile):
    row = profile.to_dict()
    row['role'] = profile.role.value
    return row


def _sync_open_session(app_ctx, uid):
    store = app_ctx.sessions.peek(uid)
    if store is not None:
        try:
            store.refresh()
        except PromptStudioError as e:
            app_ctx.logger.info(f"Could not refresh session for {uid}: {e.message}")


def list_users(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    users = sorted(app_ctx.identity.list_users(), key=lambda profile: profile.email.lower())
    return app_ctx.jsonify({'users': [_user_row(profile) for profile in users]})


def set_role(app_ctx, request, uid):
    admin, error = _require_admin(app_ctx)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    try:
        role = UserRole.parse(data.get('role'))
    except ValueError:
        return app_ctx.jsonify({'error': 'Invalid role'}), 400
    try:
        updated = app_ctx.identity.set_role(uid, role)
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    _sync_open_session(app_ctx, uid)
    app_ctx.logger.info(f"Admin {admin.uid} set role of {uid} to {role.value}")
    return app_ctx.jsonify({'user': _user_row(updated)})


def set_commission_rate(app_ctx, request, uid):
    admin, error = _require_admin(app_ctx)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    try:
        rate_percent = float(data.get('rate_percent'))
    except (TypeError, ValueError):
        return app_ctx.jsonify({'error': 'rate_percent must be a number between 0 and 100'}), 400
    if not 0 <= rate_percent <= 100:
        return app_ctx.jsonify({'error': 'rate_percent must be a number between 0 and 100'}), 400
    try:
        updated = app_ctx.identity.set_commission_rate(uid, rate_percent / 100.0)
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    if updated is None:
        return app_ctx.jsonify({'error': 'Commission rate can only be set for affiliates.'}), 400
    _sync_open_session(app_ctx, uid)
    app_ctx.logger.info(f"Admin {admin.uid} set commission of {uid} to {rate_percent}%")
    return app_ctx.jsonify({'user': _user_row(updated)})


def grant_credits(app_ctx, request, uid):
    admin, error = _require_admin(app_ctx)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    try:
        amount = int(data.get('amount'))
    except (TypeError, ValueError):
        return app_ctx.jsonify({'error': 'amount must be a positive whole number'}), 400
    if amount <= 0 or amount > MAX_CREDIT_GRANT:
        return app_ctx.jsonify({'error': 'amount must be a positive whole number'}), 400

    store = app_ctx.sessions.peek(uid)
    try:
        if store is not None:
            mutation = store.add_credits(amount)
            try:
                saved = mutation.wait(timeout=CREDIT_GRANT_TIMEOUT_SECONDS)
            except FutureTimeoutError:
                app_ctx.logger.error(f"Credit grant for {uid} timed out after {CREDIT_GRANT_TIMEOUT_SECONDS}s")
                saved = False
            if not saved:
                return app_ctx.jsonify({'error': 'Could not save the credit grant. Please try again.'}), 502
            credits = store.credits
        else:
            credits = app_ctx.identity.update_credits(uid, amount).credits
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    app_ctx.logger.info(f"Admin {admin.uid} granted {amount} credits to {uid}")
    return app_ctx.jsonify({'ok': True, 'user_id': uid, 'credits': credits})


def list_transactions(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    transactions = app_ctx.payment_backend.list_transactions()
    return app_ctx.jsonify({
        'transactions': [tx.to_dict() for tx in transactions],
        'total_revenue': app_ctx.payment_backend.total_revenue(),
    })


def list_affiliates(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    affiliates = [profile for profile in app_ctx.identity.list_users() if profile.role is UserRole.AFFILIATE]
    return app_ctx.jsonify({
        'affiliates': [commission_service.affiliate_stats(app_ctx.identity, app_ctx.ledger, profile) for profile in affiliates],
    })


def publish_announcement(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    try:
        announcement = announcement_service.publish_announcement(app_ctx.settings, data.get('message'))
    except ValueError as e:
        return app_ctx.jsonify({'error': str(e)}), 400
    return app_ctx.jsonify({'announcement': announcement})


def clear_announcement(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    announcement_service.clear_announcement(app_ctx.settings)
    response = app_ctx.jsonify({'ok': True})
    response.delete_cookie(announcement_service.DISMISSED_COOKIE_NAME, path='/')
    return response


def get_pix_key(app_ctx, request):
    _admin, error = _require_admin(app_ctx)
    if error:
        return error
    return app_ctx.jsonify({'pix_key': app_ctx.settings.get(PIX_KEY_SETTING, '') or ''})


def set_pix_key(app_ctx, request):
    admin, error = _require_admin(app_ctx)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    pix_key = str(data.get('pix_key', '') or '').strip()
    if len(pix_key) > MAX_PIX_KEY_LENGTH:
        return app_ctx.jsonify({'error': f"PIX key is limited to {MAX_PIX_KEY_LENGTH} characters."}), 400
    if pix_key:
        app_ctx.settings.set(PIX_KEY_SETTING, pix_key)
    else:
        app_ctx.settings.delete(PIX_KEY_SETTING)
    app_ctx.logger.info(f"Admin {admin.uid} {'updated' if pix_key else 'cleared'} the PIX key")
    return app_ctx.jsonify({'ok': True, 'configured': bool(pix_key)})
