"""Business logic handlers for the affiliate dashboard."""

from prompt_studio.models import UserRole
from prompt_studio.services import commission_service


def referral_link(host_url, affiliate_id):
    return f"{host_url.rstrip('/')}/?ref={affiliate_id}"


def get_dashboard(app_ctx, request):
    store = app_ctx.current_store()
    if store is None:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    # commission_earned is written by other users' payments, so read it fresh
    profile = app_ctx.identity.get_profile(store.uid)
    if profile.role is not UserRole.AFFILIATE or not profile.affiliate_id:
        return app_ctx.jsonify({'error': 'Forbidden'}), 403

    stats = commission_service.affiliate_stats(app_ctx.identity, app_ctx.ledger, profile)
    stats['referral_link'] = referral_link(request.host_url, profile.affiliate_id)
    return app_ctx.jsonify(stats)
