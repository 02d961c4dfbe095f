from contextlib import asynccontextmanager

import joblib
import pandas as pd
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .model_trainer import FinalModel

MODEL_PATH = "artifacts/models/knn.joblib"

model: FinalModel | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global model
    # startup
    model = joblib.load(MODEL_PATH)
    yield
    # shutdown
    model = None


app = FastAPI(
    title="Seed Variety Classifier API",
    lifespan=lifespan,
)


class SeedMeasurements(BaseModel):
    area: float = Field(gt=0)
    perimeter: float = Field(gt=0)
    compactness: float = Field(gt=0)
    kernel_length: float = Field(gt=0)
    kernel_width: float = Field(gt=0)
    asymmetry: float = Field(ge=0)
    groove_length: float = Field(gt=0)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "model_loaded": model is not None,
        "model_path": MODEL_PATH,
        "model": None if model is None else model.spec.name,
    }


@app.post("/predict")
def predict(req: SeedMeasurements):
    if model is None:
        raise HTTPException(status_code=500, detail="Model not loaded")

    # must match training: the stored preprocessor is applied before the estimator
    X = pd.DataFrame([req.model_dump()])
    prediction = model.predict(X)

    return {
        "variety": str(prediction.labels.iloc[0]),
        "probabilities": {
            cls: float(p) for cls, p in prediction.probabilities.iloc[0].items()
        },
    }
