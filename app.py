from autobuilder.server import app  # re-use the FastAPI instance
from autobuilder.settings import settings

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
