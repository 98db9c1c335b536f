from flask import Blueprint

admin_bp = Blueprint('admin_api', __name__)


@admin_bp.route('/api/admin/users', methods=['GET'])
def list_users():
    from prompt_studio import runtime

    return runtime.admin_list_users_impl()


@admin_bp.route('/api/admin/users/<uid>/role', methods=['POST'])
def set_role(uid):
    from prompt_studio import runtime

    return runtime.admin_set_role_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/commission', methods=['POST'])
def set_commission(uid):
    from prompt_studio import runtime

    return runtime.admin_set_commission_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/credits', methods=['POST'])
def grant_credits(uid):
    from prompt_studio import runtime

    return runtime.admin_grant_credits_impl(uid)


@admin_bp.route('/api/admin/transactions', methods=['GET'])
def list_transactions():
    from prompt_studio import runtime

    return runtime.admin_transactions_impl()


@admin_bp.route('/api/admin/affiliates', methods=['GET'])
def list_affiliates():
    from prompt_studio import runtime

    return runtime.admin_affiliates_impl()


@admin_bp.route('/api/admin/announcement', methods=['POST'])
def publish_announcement():
    from prompt_studio import runtime

    return runtime.admin_publish_announcement_impl()


@admin_bp.route('/api/admin/announcement', methods=['DELETE'])
def clear_announcement():
    from prompt_studio import runtime

    return runtime.admin_clear_announcement_impl()


@admin_bp.route('/api/admin/pix-key', methods=['GET'])
def get_pix_key():
    from prompt_studio import runtime

    return runtime.admin_get_pix_key_impl()


@admin_bp.route('/api/admin/pix-key', methods=['POST'])
def set_pix_key():
    from prompt_studio import runtime

    return runtime.admin_set_pix_key_impl()
