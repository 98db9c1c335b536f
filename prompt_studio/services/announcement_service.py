"""Site-wide announcement banner."""

import time


ANNOUNCEMENT_SETTING = 'announcement'
DISMISSED_COOKIE_NAME = 'dismissed_announcement_id'
DISMISSED_COOKIE_MAX_AGE = 365 * 24 * 3600
MAX_MESSAGE_LENGTH = 500


def get_announcement(settings):
    value = settings.get(ANNOUNCEMENT_SETTING)
    if not isinstance(value, dict) or not value.get('message'):
        return None
    return {'id': str(value.get('id', '') or ''), 'message': str(value['message'])}


def publish_announcement(settings, message, now=None):
    message = str(message or '').strip()
    if not message:
        raise ValueError('Announcement message is required.')
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Announcement is limited to {MAX_MESSAGE_LENGTH} characters.")
    announcement = {
        'id': str(int((now if now is not None else time.time()) * 1000)),
        'message': message,
    }
    settings.set(ANNOUNCEMENT_SETTING, announcement)
    return announcement


def clear_announcement(settings):
    settings.delete(ANNOUNCEMENT_SETTING)


def visible_announcement(settings, dismissed_id):
    """Current announcement unless its id matches the dismissed id."""
    announcement = get_announcement(settings)
    if announcement is None:
        return None
    if dismissed_id and str(dismissed_id) == announcement['id']:
        return None
    return announcement
