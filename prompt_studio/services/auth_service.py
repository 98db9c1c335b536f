"""Authentication utility helpers."""

from prompt_studio.models import UserRole


SESSION_UID_KEY = 'uid'


def extract_bearer_token(request):
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return ''
    return auth_header.split('Bearer ', 1)[1].strip()


def verify_firebase_token(request, auth_module, logger):
    """Return decoded Firebase token dict, or None when invalid/missing."""
    token = extract_bearer_token(request)
    if not token or auth_module is None:
        return None
    try:
        return auth_module.verify_id_token(token)
    except Exception as exc:
        if logger is not None:
            logger.info(f"Token verification failed: {exc}")
        return None


def is_admin_profile(profile, admin_emails=frozenset()):
    if profile is None:
        return False
    if profile.role is UserRole.ADMIN:
        return True
    return str(profile.email or '').strip().lower() in admin_emails


def home_view_for(profile):
    """Landing view for a role."""
    if profile is None:
        return 'login'
    if profile.role is UserRole.ADMIN:
        return 'admin'
    if profile.role is UserRole.AFFILIATE:
        return 'affiliate'
    if profile.role is UserRole.INFLUENCER:
        return 'influencer'
    return 'home'
