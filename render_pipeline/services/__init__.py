"""Business logic services for the render pipeline.

Services:
    job_store: Job persistence and atomic status transitions
    object_store: S3 get/put by key
    transcoder: ffmpeg transcoding behind a narrow protocol
    render_service: Render job producer (create Job, then publish)
"""
