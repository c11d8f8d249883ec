"""
Challengers Scheduler Package

This package contains the scheduled challenge engine:
- api: FastAPI trigger and administrative endpoints
- auth: Credential encryption, resolution and shared-secret gates
- core: The batch executor
- db: Supabase client
- scheduling: Schedule entities, validation and the guarded store
- services: osu! API integration
- worker: Celery beat task running the batch periodically
"""
