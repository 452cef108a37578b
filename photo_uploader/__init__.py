"""Photo upload pipeline: ingestion, aspect classification and square cropping.

Usage:
    from photo_uploader.app.backend import UploaderBackend

    backend = UploaderBackend()
    backend.event_.connect(on_event)
    backend.ingest(files)
    ...
    files = backend.current_upload_list()
"""

__version__ = "0.3.0"
