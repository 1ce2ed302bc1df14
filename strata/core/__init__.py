"""
Core session engine.

The `Session` wires a media resource to the `StateStore` and the `EventBus`,
and delegates error recovery to the `RetryController`.
"""
