from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.config import settings
from src.logger_config import configure_logging
from src.sessions import router as sessions_router
from src.sessions.session import session_manager

configure_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Give back every seat still held by an open terminal
    await session_manager.close_all()

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Counter booking service: seat holds, booking flow and realtime seat updates",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Counter UI dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    sessions_router,
    prefix=f"{settings.API_V1_STR}/sessions",
    tags=["Counter Sessions"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "sessions": len(session_manager)}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
