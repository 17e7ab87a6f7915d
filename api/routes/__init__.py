"""
RoloDex AI API Routes Package.

Example:
    from api.routes import ai_router

    app.include_router(ai_router)
"""

from api.routes.ai import router as ai_router


__all__ = [
    "ai_router",
]
