def init_extensions(app, config=None) -> None:
    """Record factory state on the app; safe to call more than once."""
    if app is None:
        return
    if not hasattr(app, 'extensions'):
        return
    state = app.extensions.setdefault('prompt_studio', {})
    state['factory_initialized'] = True
    if config is not None:
        state['runtime_env'] = config.runtime_env
        state['payment_provider'] = config.payment_provider
        state['identity_backend'] = config.identity_backend
