"""Analytics and threat analysis API endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_cache, get_waf_service
from app.core.redis import LATEST_ANALYSIS_KEY, RedisClient
from app.schemas.waf import (
    AnalysisWindowRequest,
    Insight,
    RequestLog,
    ThreatAnalysis,
    WafStats,
)
from app.services.waf_service import WAFService

router = APIRouter()


@router.get("/logs", response_model=List[RequestLog])
async def get_logs(
    limit: int = Query(100, ge=1, le=10000),
    service: WAFService = Depends(get_waf_service)
):
    """Get request logs, newest first"""
    return service.list_logs(limit)


@router.get("/stats", response_model=WafStats)
async def get_stats(service: WAFService = Depends(get_waf_service)):
    """Get aggregate security statistics"""
    return service.get_stats()


@router.get("/threat/analysis", response_model=ThreatAnalysis)
async def get_latest_analysis(
    service: WAFService = Depends(get_waf_service),
    cache: RedisClient = Depends(get_cache)
):
    """Get the most recent threat analysis, or the one cached by the worker"""
    analysis = service.latest_analysis
    if analysis is None:
        cached = await cache.get(LATEST_ANALYSIS_KEY)
        if cached:
            analysis = ThreatAnalysis.model_validate_json(cached)
    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No threat analysis has been run yet"
        )
    return analysis


@router.post("/threat/analysis", response_model=ThreatAnalysis)
async def analyze_threat(
    body: Optional[AnalysisWindowRequest] = None,
    service: WAFService = Depends(get_waf_service)
):
    """Analyze the given window, or the newest logs when none is given"""
    window = body.logs if body else None
    return await service.analyze_threat(window)


@router.post("/threat/insights", response_model=List[Insight])
async def generate_insights(
    body: Optional[AnalysisWindowRequest] = None,
    service: WAFService = Depends(get_waf_service)
):
    """Generate security insights for the given window or the newest logs"""
    window = body.logs if body else None
    return await service.generate_insights(window)
