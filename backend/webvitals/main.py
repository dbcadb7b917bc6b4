from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from webvitals.api.analysis import router as analysis_router
from webvitals.core.config import Settings

app = FastAPI(title="WebVitals Analyzer API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(analysis_router)
