"""Business logic handlers for payment APIs."""

from prompt_studio.errors import PromptStudioError
from prompt_studio.services import payment_gateway


def get_config(app_ctx):
    options = payment_gateway.purchase_options()
    return app_ctx.jsonify({
        'payment_provider': app_ctx.CONFIG.payment_provider,
        'payments_configured': bool(app_ctx.payment_backend.is_configured()),
        'poll_interval_seconds': app_ctx.CONFIG.payment_poll_interval_seconds,
        'auto_close_seconds': app_ctx.CONFIG.payment_auto_close_seconds,
        'packages': options['packages'],
        'default_package': options['default_package'],
        'custom': options['custom'],
    })


def _require_store(app_ctx):
    store = app_ctx.current_store()
    if store is None:
        return None, (app_ctx.jsonify({'error': 'Please sign in to continue'}), 401)
    return store, None


def _owned_flow(app_ctx, uid, flow_id):
    flow = app_ctx.gateway.get_flow(flow_id)
    if flow is None or flow.user_id != uid:
        return None
    return flow


def _charge_flow(app_ctx, flow, data):
    try:
        credits, amount_display = payment_gateway.resolve_purchase(
            package_id=data.get('package_id'),
            custom_credits=data.get('custom_credits'),
        )
    except PromptStudioError as e:
        return app_ctx.error_response(e)

    method = str(data.get('method', 'pix') or 'pix').strip().lower()
    try:
        if method == 'card':
            card_token = str(data.get('card_token', '') or '').strip()
            if not card_token:
                return app_ctx.jsonify({'error': 'Card token is required.'}), 400
            app_ctx.gateway.pay_with_card(flow, amount_display, credits, card_token)
        elif method == 'pix':
            app_ctx.gateway.create_charge(flow, amount_display, credits)
        else:
            return app_ctx.jsonify({'error': 'Invalid payment method'}), 400
    except PromptStudioError as e:
        return app_ctx.error_response(e)

    app_ctx.logger.info(f"Purchase {flow.id} for {flow.user_id}: {credits} credits via {method} -> {flow.state.value}")
    return app_ctx.jsonify({'purchase': flow.to_public_dict()})


def create_purchase(app_ctx, request):
    store, error = _require_store(app_ctx)
    if error:
        return error

    allowed_checkout, retry_after = app_ctx.check_rate_limit(
        key=f"checkout:{app_ctx.normalize_rate_limit_key_part(store.uid, fallback='anon_uid')}",
        limit=app_ctx.CONFIG.checkout_rate_limit_max_requests,
        window_seconds=app_ctx.CONFIG.checkout_rate_limit_window_seconds,
    )
    if not allowed_checkout:
        app_ctx.log_rate_limit_hit('checkout', retry_after)
        return app_ctx.build_rate_limited_response(
            'Too many checkout attempts. Please wait before starting another checkout.',
            retry_after,
        )

    app_ctx.gateway.sweep()
    data = request.get_json(silent=True) or {}
    flow = app_ctx.gateway.start_purchase(store.uid)
    return _charge_flow(app_ctx, flow, data)


def get_purchase(app_ctx, request, flow_id):
    store, error = _require_store(app_ctx)
    if error:
        return error
    flow = _owned_flow(app_ctx, store.uid, flow_id)
    if flow is None:
        return app_ctx.jsonify({'error': 'Purchase not found'}), 404
    payload = flow.to_public_dict()
    payload['user_credits'] = store.credits
    return app_ctx.jsonify({'purchase': payload})


def charge_purchase(app_ctx, request, flow_id):
    store, error = _require_store(app_ctx)
    if error:
        return error
    flow = _owned_flow(app_ctx, store.uid, flow_id)
    if flow is None:
        return app_ctx.jsonify({'error': 'Purchase not found'}), 404
    return _charge_flow(app_ctx, flow, request.get_json(silent=True) or {})


def retry_purchase(app_ctx, request, flow_id):
    store, error = _require_store(app_ctx)
    if error:
        return error
    flow = _owned_flow(app_ctx, store.uid, flow_id)
    if flow is None:
        return app_ctx.jsonify({'error': 'Purchase not found'}), 404
    try:
        app_ctx.gateway.retry(flow)
    except PromptStudioError as e:
        return app_ctx.error_response(e)
    return app_ctx.jsonify({'purchase': flow.to_public_dict()})


def cancel_purchase(app_ctx, request, flow_id):
    store, error = _require_store(app_ctx)
    if error:
        return error
    if _owned_flow(app_ctx, store.uid, flow_id) is None:
        return app_ctx.jsonify({'error': 'Purchase not found'}), 404
    flow = app_ctx.gateway.cancel(flow_id)
    return app_ctx.jsonify({'ok': True, 'state': flow.state.value if flow is not None else None})


def stripe_webhook(app_ctx, request):
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature', '')

    if app_ctx.STRIPE_WEBHOOK_SECRET:
        try:
            event = app_ctx.stripe.Webhook.construct_event(
                payload, sig_header, app_ctx.STRIPE_WEBHOOK_SECRET
            )
        except ValueError:
            app_ctx.logger.warning("Stripe webhook: Invalid payload")
            return 'Invalid payload', 400
        except app_ctx.stripe.SignatureVerificationError as e:
            app_ctx.logger.warning(f"Stripe webhook signature verification failed: {e}")
            return 'Invalid signature', 400
        except Exception as e:
            app_ctx.logger.error(f"Stripe webhook unexpected error: {e}")
            return 'Webhook processing error', 500
    else:
        app_ctx.logger.warning("⚠️ Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        return app_ctx.jsonify({'error': 'Webhook not configured'}), 500

    if event.get('type') == 'payment_intent.succeeded':
        intent = event['data']['object']
        charge_id = intent.get('id', '')
        try:
            ok, status = app_ctx.gateway.confirm_charge(charge_id)
        except PromptStudioError as e:
            app_ctx.logger.error(f"Webhook could not confirm {charge_id}: {e.message}")
            return 'Webhook processing error', 500
        if ok and status == 'granted':
            app_ctx.logger.info(f"✅ Payment successful! Credits granted for {charge_id}")
        elif ok and status == 'already_processed':
            app_ctx.logger.info(f"ℹ️ Payment {charge_id} already processed.")
        elif status == 'grant_failed':
            app_ctx.logger.error(f"Webhook could not grant credits for {charge_id}; asking for redelivery.")
            return 'Webhook processing error', 500
        else:
            app_ctx.logger.warning(f"⚠️ Webhook payment {charge_id} not processed: {status}")

    return '', 200


def get_purchase_history(app_ctx, request):
    store, error = _require_store(app_ctx)
    if error:
        return error
    try:
        transactions = app_ctx.ledger.list_for_user(store.uid, 50)
        return app_ctx.jsonify({'purchases': [tx.to_dict() for tx in transactions]})
    except Exception as e:
        app_ctx.logger.error(f"Error fetching purchase history: {e}")
        return app_ctx.jsonify({'purchases': []})
