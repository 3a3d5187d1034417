"""Services module for the media pipeline and job lifecycle."""
from stream_app.services.processing import ProcessingService, build_processing_service
from stream_app.services.workspace import JobStore, WorkspaceSweeper

__all__ = ['ProcessingService', 'build_processing_service', 'JobStore', 'WorkspaceSweeper']
