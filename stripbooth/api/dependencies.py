from stripbooth.config import settings
from stripbooth.services.booth import BoothService
from stripbooth.services.camera import camera_service
from stripbooth.services.capture import CaptureSession
from stripbooth.services.catalog import layout_catalog, theme_catalog
from stripbooth.services.compositor import compositor
from stripbooth.services.storage import create_storage
from stripbooth.services.websocket import websocket_manager

storage = create_storage(settings.storage_backend)
capture_session = CaptureSession(camera_service)
booth_service = BoothService(capture_session, compositor, storage)
booth_service.subscribe(websocket_manager.broadcast)


def get_camera_service():
    return camera_service


def get_layout_catalog():
    return layout_catalog


def get_theme_catalog():
    return theme_catalog


def get_booth_service():
    return booth_service


def get_storage():
    return storage


def get_websocket_manager():
    return websocket_manager
