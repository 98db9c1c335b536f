from flask import Blueprint

payments_bp = Blueprint('payments_api', __name__)


@payments_bp.route('/api/config', methods=['GET'])
def get_config():
    from prompt_studio import runtime

    return runtime.get_config_impl()


@payments_bp.route('/api/purchases', methods=['POST'])
def create_purchase():
    from prompt_studio import runtime

    return runtime.create_purchase_impl()


@payments_bp.route('/api/purchases/<flow_id>', methods=['GET'])
def get_purchase(flow_id):
    from prompt_studio import runtime

    return runtime.get_purchase_impl(flow_id)


@payments_bp.route('/api/purchases/<flow_id>', methods=['DELETE'])
def cancel_purchase(flow_id):
    from prompt_studio import runtime

    return runtime.cancel_purchase_impl(flow_id)


@payments_bp.route('/api/purchases/<flow_id>/charge', methods=['POST'])
def charge_purchase(flow_id):
    from prompt_studio import runtime

    return runtime.charge_purchase_impl(flow_id)


@payments_bp.route('/api/purchases/<flow_id>/retry', methods=['POST'])
def retry_purchase(flow_id):
    from prompt_studio import runtime

    return runtime.retry_purchase_impl(flow_id)


@payments_bp.route('/api/stripe-webhook', methods=['POST'])
def stripe_webhook():
    from prompt_studio import runtime

    return runtime.stripe_webhook_impl()


@payments_bp.route('/api/purchase-history', methods=['GET'])
def purchase_history():
    from prompt_studio import runtime

    return runtime.purchase_history_impl()
