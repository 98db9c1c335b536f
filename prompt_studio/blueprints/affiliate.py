from flask import Blueprint

affiliate_bp = Blueprint('affiliate_api', __name__)


@affiliate_bp.route('/api/affiliate/dashboard', methods=['GET'])
def dashboard():
    from prompt_studio import runtime

    return runtime.affiliate_dashboard_impl()
