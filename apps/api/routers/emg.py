"""
EMG API Router

Accepts muscle-sensor readings from the client widget and returns a
qualitative analysis alongside the stored reading.
"""
import logging

from fastapi import APIRouter, Depends, Query

from schemas import EMGDataCreate, EMGDataResponse, EMGHistoryResponse
from services.attempt_store import DEFAULT_EMG_HISTORY_LIMIT, AttemptStore, get_attempt_store
from services.emg_analysis import record_emg_reading

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/emg", tags=["EMG"])


@router.post("/data", response_model=EMGDataResponse)
def save_emg_data(data: EMGDataCreate, store: AttemptStore = Depends(get_attempt_store)):
    reading, analysis = record_emg_reading(store, data)
    if analysis.fatigue_warning:
        logger.info(
            f"High fatigue reading for user {data.user_id}",
            extra={"extra_fields": {"user_id": data.user_id, "fatigue": data.fatigue}},
        )
    return EMGDataResponse(data=reading, analysis=analysis)


@router.get("/history/{user_id}", response_model=EMGHistoryResponse)
def get_emg_history(
    user_id: str,
    limit: int = Query(DEFAULT_EMG_HISTORY_LIMIT, ge=0),
    store: AttemptStore = Depends(get_attempt_store),
):
    return EMGHistoryResponse(data=store.get_emg_history(user_id, limit))
