# =============================================================================
# app/ - NoteFlow HTTP Layer
# =============================================================================
# FastAPI application for the NoteFlow API:
# - main.py: App factory, middleware, exception handlers, router mounting
# - config.py: Settings loaded from the environment
# - auth/: JWT dependencies, role/plan guards and the /auth routes
# - routers/: One module per resource
#
# Routes stay thin and call the services in core/.
# =============================================================================
