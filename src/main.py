from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from api.waste.router import router as waste_router
from provider.local_storage import URL_PREFIX, LocalStorageService
import uvicorn
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

def create_app() -> FastAPI:
    app = FastAPI(title="EcoScan")
    app.include_router(waste_router)

    # annotated images are served by the app itself when stored on disk
    if os.getenv("IMAGE_STORE", "minio").lower() == "local":
        app.mount(URL_PREFIX, StaticFiles(directory=LocalStorageService().directory), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 3000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, log_level="info", workers=2)
