"""Business logic services.

Services contain the reconciliation and scheduling logic and are called by
routes and the worker. They take their dependencies (store, remote client,
queue, lease) explicitly; see catalog_sync.container for the wiring.
"""
