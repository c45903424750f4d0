"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskConfig, ExecuteIn)
- task_events.py: lifecycle events and the publish/subscribe emitter
- task_store.py: in-memory queue of pending tasks
- task_scheduler.py: run loop that dispatches queued tasks under a concurrency limit
- deferred.py: asyncio-backed deferred execution for async tasks
- task_api.py: small high-level helpers used by applications
"""
