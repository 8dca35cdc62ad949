"""
Predictions API — /predictions
────────────────────────────────
Endpoints:
  POST /predictions                     — Predict targets against a supplied context
  GET  /predictions/{owner_id}/context  — The owner's assembled context
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playedit.db.session import get_db
from playedit.db.store import RankingStore
from playedit.schemas.predictions import PredictionContext, PredictionRequest, PredictionResult
from playedit.services.context_builder import build_context
from playedit.services.prediction_engine import PredictionEngine

router = APIRouter()


@router.post("", response_model=list[PredictionResult])
def predict_batch(payload: PredictionRequest) -> list[dict]:
    """One result per target; prediction is null when there is no usable signal."""
    engine = PredictionEngine()
    results = []
    for target in payload.targets:
        prediction = engine.predict(target, payload.context)
        results.append({
            "item_id": target.item_id,
            "prediction": prediction,
            "confidence_label": prediction.confidence_label if prediction else None,
            "summary_text": prediction.summary_text if prediction else None,
        })
    return results


@router.get("/{owner_id}/context", response_model=PredictionContext)
def get_context(owner_id: str, db: Session = Depends(get_db)) -> PredictionContext:
    return build_context(RankingStore(db), owner_id)
