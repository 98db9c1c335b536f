from flask import Blueprint

auth_bp = Blueprint('auth_api', __name__)


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    from prompt_studio import runtime

    return runtime.login_impl()


@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    from prompt_studio import runtime

    return runtime.register_impl()


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    from prompt_studio import runtime

    return runtime.logout_impl()


@auth_bp.route('/api/me', methods=['GET'])
def get_me():
    from prompt_studio import runtime

    return runtime.get_me_impl()
