from doclens.api.chat import build_chat_router
from doclens.api.documents import build_documents_router
from doclens.api.health import build_health_router

__all__ = [
    "build_chat_router",
    "build_documents_router",
    "build_health_router",
]
