import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from resizer.api.v1.routes import router as api_v1_router
from resizer.services.imaging import max_dimension

# Load environment variables from .env file
print("\n" + "="*60)
print("🔧 LOADING ENVIRONMENT CONFIGURATION")
print("="*60)

env_path = Path(__file__).parent.parent / ".env"
print(f"Looking for .env file at: {env_path}")

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=False)
    print("✓ .env file loaded")
else:
    print(f"⚠ .env file not found at: {env_path}")
    print("  Create it with: GEMINI_API_KEY=your_key_here")

api_key = os.environ.get("GEMINI_API_KEY")
if api_key:
    print(f"✓ GEMINI_API_KEY loaded: {api_key[:6]}...")
else:
    print("⚠ GEMINI_API_KEY not set; outpaint/analyze requests must supply a key")

print("="*60 + "\n")

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Build the Aspect Resizer application.

    Tests import the module-level `app`; `uvicorn resizer.main:app` serves it.
    """
    app = FastAPI(
        title="Aspect Resizer API",
        version="0.1.0",
        description="Resize images to exact dimensions by center-crop or AI outpainting.",
    )

    # Unversioned liveness probe.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        return {"status": "ok"}

    app.include_router(api_v1_router)

    logger.info("Aspect Resizer API ready (max output dimension %d)", max_dimension())
    return app


app = create_app()
