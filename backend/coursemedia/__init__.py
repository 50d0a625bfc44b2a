"""Course media pipeline.

Asynchronous ingestion and transcoding of course video lessons.

Modules:
    - core: Configuration, database, logging, metrics, Redis, Celery, object storage
    - modules.transcoding: Resolution/bitrate table and the FFmpeg transcoding engine
    - modules.video: Upload intake, processing orchestrator, queries and tasks
"""

__version__ = "0.1.0"
