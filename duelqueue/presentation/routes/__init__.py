from .matchmaking import router as matchmaking_router

__all__ = ["matchmaking_router"]
