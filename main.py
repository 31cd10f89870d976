import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from msgames.config import get_settings
from msgames.dao.db import Db
from msgames.routes.game_routes import router as game_router
from msgames.utils.errors import register_exception_handlers

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting MS Games beergame backend...")
    db = Db.get_instance()
    await db.connect()
    yield
    logger.info("Shutting down MS Games beergame backend...")
    db.close()
    Db.reset()


app = FastAPI(
    title="MS Games Beergame Backend",
    description="Backend API for the MS Games beer game",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(game_router)

@app.get("/")
async def root():
    return {"message": "MS Games Beergame Backend API is running"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
