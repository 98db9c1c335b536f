from flask import Blueprint

site_bp = Blueprint('site', __name__)


@site_bp.route('/', methods=['GET'])
def index():
    from prompt_studio import runtime

    return runtime.index_impl()


@site_bp.route('/healthz', methods=['GET'])
def healthz():
    from prompt_studio import runtime

    return runtime.healthz_impl()


@site_bp.route('/api/announcement', methods=['GET'])
def get_announcement():
    from prompt_studio import runtime

    return runtime.get_announcement_impl()


@site_bp.route('/api/announcement/dismiss', methods=['POST'])
def dismiss_announcement():
    from prompt_studio import runtime

    return runtime.dismiss_announcement_impl()
