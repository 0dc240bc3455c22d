"""Generation dispatch: provider resolution, protocol routing, bridge invocation.

Entry point: services.generation.invoker.GenerationInvoker. Wiring (main.py):

    resolver = ProviderResolver(lambda: settings_service.snapshot)
    invoker = GenerationInvoker(resolver, HttpBridge())

Kept import-free: core.bridge imports services.generation.errors.
"""
