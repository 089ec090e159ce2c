"""日历分析路由

GET /api/analytics/calendar?userId=&start=YYYY-MM-DD&end=YYYY-MM-DD
缺少 start / end 返回 400。
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sylvia.agents.calendar import CalendarAnalytics, CalendarAnalyticsResponse

from ..deps import get_calendar
from ..errors import error_response

router = APIRouter()


@router.get(
    "/api/analytics/calendar",
    response_model=CalendarAnalyticsResponse,
    response_model_by_alias=True,
)
async def calendar_analytics(
    user_id: str = Query(alias="userId"),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    calendar: CalendarAnalytics = Depends(get_calendar),
):
    if start is None or end is None:
        return error_response(400, "BAD_REQUEST", "Start and end dates required")
    if start > end:
        return error_response(400, "BAD_REQUEST", "Start date must not be after end date")
    return await calendar.get_calendar_analytics(user_id, start, end)
